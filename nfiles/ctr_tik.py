from .common import *
from .ctr_sig import get_sig_size, read_sig, pack_sig
from .ctr_cert import CertReader

logger = logging.getLogger(__name__)

class tikData(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('issuer', c_char * 0x40),
        ('ecc_pubkey', c_uint8 * 0x3C),
        ('format_ver', c_uint8),
        ('ca_crl_ver', c_uint8),
        ('signer_crl_ver', c_uint8),
        ('enc_titlekey', c_uint8 * 16),
        ('reserved1', c_uint8),
        ('ticketID', c_uint64),
        ('consoleID', c_uint32),
        ('titleID', c_uint8 * 8),
        ('reserved2', c_uint16),
        ('title_ver', c_uint16),
        ('reserved3', c_uint64),
        ('license_type', c_uint8),
        ('common_key_index', c_uint8),
        ('reserved4', c_uint8 * 0x2A),
        ('eshop_acc_id', c_uint8 * 4),
        ('reserved5', c_uint8),
        ('audit', c_uint8),
        ('reserved6', c_uint8 * 0x42),
        ('limits', c_uint8 * 0x40),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

content_index_hdr_size = 0x2C # Header words in front of the content index bitmap

class tikReader:
    '''
    file: Stream, bytes (e.g. the ticket slice of a CIA), or path to a ticket

    Tickets downloaded from the CDN carry two certificates after the content index (ticket signer, then CA)
    '''

    def __init__(self, file):
        stream = open_stream(file)

        self.sig_type, self.sig = read_sig(stream)
        self.data = tikData(stream.read(sizeof(tikData)))

        # The content index starts with an unknown word followed by its own total size,
        # so read the size and step back to include both words in the content index
        stream.skip(4)
        content_index_size = stream.readbe(4)
        stream.skip(-8)
        if content_index_size < 8:
            raise MalformedHeaderError(f'Ticket content index size {hex(content_index_size)} is smaller than its own header')
        self.content_index = stream.read(content_index_size)

        self.self_cert = None
        self.ca_cert = None
        if stream.remaining():
            self.self_cert = CertReader(stream)
            self.ca_cert = CertReader(stream)

        logger.debug('Parsed ticket for %016x (content index %#x bytes, certificates: %s)', self.title_id, content_index_size, self.self_cert is not None)

    @classmethod
    def from_base64(cls, data):
        return cls(base64.b64decode(data))

    @property
    def issuer(self):
        return self.data.issuer.decode('ascii', 'replace')

    @issuer.setter
    def issuer(self, value):
        set_fixed_str(self.data, 'issuer', value)

    @property
    def title_id(self):
        return readbe(bytes(self.data.titleID))

    @property
    def ticket_id(self):
        return self.data.ticketID

    @property
    def console_id(self):
        return self.data.consoleID

    @property
    def title_version(self):
        return self.data.title_ver

    @property
    def common_key_index(self):
        return self.data.common_key_index

    @property
    def titlekey(self):
        return bytes(self.data.enc_titlekey) # Still encrypted

    @property
    def certs(self):
        return [i for i in (self.self_cert, self.ca_cert) if i is not None]

    @property
    def signature_body(self):
        return bytes(self.data) + self.content_index

    def size(self):
        size = 4 + get_sig_size(self.sig_type).total + sizeof(tikData) + len(self.content_index)
        for i in self.certs:
            size += i.size()
        return size

    def encode(self):
        return pack_sig(self.sig_type, self.sig) + self.signature_body + b''.join([i.encode() for i in self.certs])

    def __bytes__(self):
        return self.encode()

    def __len__(self):
        return self.size()

    def __eq__(self, other):
        if not isinstance(other, tikReader):
            return NotImplemented
        return self.encode() == other.encode()

    def enabled_contents(self):
        bitmap = self.content_index[content_index_hdr_size:content_index_hdr_size + 0x80]
        return [i for i in range(len(bitmap) * 8) if bitmap[i // 8] & (1 << (i % 8))]

    def verify(self, cert=None):
        '''
        cert: CertReader of the ticket signer (XS); defaults to the certificate embedded in the ticket
        '''

        if cert is None:
            cert = self.self_cert
        if cert is None:
            return False
        return cert.verify(self.sig, self.signature_body)

    def __str__(self):
        enabled_content_idxs = [hex(i)[2:].zfill(4) for i in self.enabled_contents()]

        contents = ''
        for i in enabled_content_idxs:
            contents += f' > {i}\n'
        contents = contents[:-1] # Remove last '\n'

        bitmap = self.content_index[content_index_hdr_size:content_index_hdr_size + 0x80]
        if bitmap == b'\xff' * 0x80: # If all content indexes are enabled, make printout shorter
            contents = f' > 0000 \n   ...\n > 03ff'

        return (
            f'Issuer:            {self.issuer}\n'
            f'TitleKey:          {self.titlekey.hex()} (encrypted)\n'
            f'TicketID:          {hex(self.data.ticketID)[2:].zfill(16)}\n'
            f'ConsoleID:         {hex(self.data.consoleID)[2:].zfill(8)}\n'
            f'TitleID:           {hex(self.title_id)[2:].zfill(16)}\n'
            f'Title version:     {self.data.title_ver}\n'
            f'Common KeyY index: {self.data.common_key_index}\n'
            f'eShop account ID:  {hex(readle(bytes(self.data.eshop_acc_id)))[2:].zfill(8)}\n' # ctrtool shows this as LE
            f'Enabled contents:\n'
            f'{contents}'
        )
