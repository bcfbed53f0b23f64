from enum import IntFlag

from .common import *
from .ctr_sig import get_sig_size, read_sig, pack_sig
from .ctr_cert import CertReader

logger = logging.getLogger(__name__)

class ContentType(IntFlag):
    ENCRYPTED = 0x1
    DISC = 0x2
    CFM = 0x4
    OPTIONAL = 0x4000
    SHARED = 0x8000

class TMDHdr(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('issuer', c_char * 0x40),
        ('format_ver', c_uint8),
        ('ca_crl_ver', c_uint8),
        ('signer_crl_ver', c_uint8),
        ('reserved1', c_uint8),
        ('system_ver', c_uint64),
        ('titleID', c_uint8 * 8),
        ('title_type', c_uint32),
        ('groupID', c_uint16),
        ('save_data_size', c_uint32),
        ('priv_save_data_size', c_uint32),
        ('reserved2', c_uint32),
        ('twl_flag', c_uint8),
        ('reserved3', c_uint8 * 0x31),
        ('access_rights', c_uint32),
        ('title_ver', c_uint16),
        ('content_count', c_uint16),
        ('boot_content', c_uint16),
        ('minor_ver', c_uint16),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class TMDContentInfoRecord(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('content_index_offset', c_uint16),
        ('content_command_count', c_uint16),
        ('content_chunk_record_hash', c_uint8 * 32),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class TMDContentChunkRecord(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('contentID', c_uint32),
        ('content_index', c_uint16),
        ('content_type', c_uint16),
        ('content_size', c_uint64),
        ('content_hash', c_uint8 * 32),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

content_info_count = 0x40 # Always 64 records in a version 1 TMD, used or not

class TMDReader:
    '''
    file: Stream, bytes (e.g. the TMD slice of a CIA), or path to a TMD

    TMDs downloaded from the CDN carry two certificates after the content chunk records (TMD signer, then CA)
    '''

    def __init__(self, file):
        stream = open_stream(file)

        self.sig_type, self.sig = read_sig(stream)
        self.hdr = TMDHdr(stream.read(sizeof(TMDHdr)))

        self.content_info_records_hash = None
        self.content_infos = []
        if self.hdr.format_ver == 1:
            self.content_info_records_hash = stream.read(0x20)
            for _ in range(content_info_count):
                self.content_infos.append(TMDContentInfoRecord(stream.read(sizeof(TMDContentInfoRecord))))

        self.content_chunks = []
        for _ in range(self.hdr.content_count):
            self.content_chunks.append(TMDContentChunkRecord(stream.read(sizeof(TMDContentChunkRecord))))

        self.self_cert = None
        self.ca_cert = None
        if stream.remaining():
            self.self_cert = CertReader(stream)
            self.ca_cert = CertReader(stream)

        logger.debug('Parsed TMD v%d for %016x (%d contents, certificates: %s)', self.hdr.format_ver, self.title_id, len(self.content_chunks), self.self_cert is not None)

    @classmethod
    def from_base64(cls, data):
        return cls(base64.b64decode(data))

    @property
    def issuer(self):
        return self.hdr.issuer.decode('ascii', 'replace')

    @issuer.setter
    def issuer(self, value):
        set_fixed_str(self.hdr, 'issuer', value)

    @property
    def title_id(self):
        return readbe(bytes(self.hdr.titleID))

    @property
    def title_version(self):
        return self.hdr.title_ver

    @property
    def certs(self):
        return [i for i in (self.self_cert, self.ca_cert) if i is not None]

    @property
    def signature_body(self):
        if self.hdr.format_ver == 1:
            return bytes(self.hdr) + self.content_info_records_hash
        return bytes(self.hdr)

    def content_records_by_index(self):
        return {i.content_index: i for i in self.content_chunks}

    def size(self):
        size = 4 + get_sig_size(self.sig_type).total + sizeof(TMDHdr)
        if self.hdr.format_ver == 1:
            size += 0x20 + sizeof(TMDContentInfoRecord) * content_info_count
        size += sizeof(TMDContentChunkRecord) * len(self.content_chunks)
        for i in self.certs:
            size += i.size()
        return size

    def encode(self):
        data = pack_sig(self.sig_type, self.sig) + self.signature_body
        if self.hdr.format_ver == 1:
            if len(self.content_infos) != content_info_count:
                raise ValueError(f'Version 1 TMD needs {content_info_count} content info records, got {len(self.content_infos)}')
            data += b''.join([bytes(i) for i in self.content_infos])
        data += b''.join([bytes(i) for i in self.content_chunks])
        data += b''.join([i.encode() for i in self.certs])
        return data

    def __bytes__(self):
        return self.encode()

    def __len__(self):
        return self.size()

    def __eq__(self, other):
        if not isinstance(other, TMDReader):
            return NotImplemented
        return self.encode() == other.encode()

    def verify_hashes(self):
        hash_check = []
        if self.hdr.format_ver != 1:
            return hash_check

        # Content info records hash in header
        content_infos_all = b''.join([bytes(i) for i in self.content_infos])
        hash_check.append(('TMD CntInfo', Crypto.sha256(content_infos_all) == self.content_info_records_hash))

        # Content chunk records hash in content info records
        hashed = []
        for i in self.content_infos:
            if not i.content_command_count:
                continue
            to_hash = b''
            for j in self.content_chunks[i.content_index_offset:i.content_index_offset + i.content_command_count]:
                to_hash += bytes(j)
            hashed.append(Crypto.sha256(to_hash) == bytes(i.content_chunk_record_hash))
        hash_check.append(('TMD CntChunk', all(hashed)))

        return hash_check

    def verify(self, cert=None):
        '''
        cert: CertReader of the TMD signer (CP); defaults to the certificate embedded in the TMD
        '''

        if cert is None:
            cert = self.self_cert
        if cert is None:
            return False
        return cert.verify(self.sig, self.signature_body)

    def __str__(self):
        contents = ''
        for i in self.content_chunks:
            contents += f' > {hex(i.content_index)[2:].zfill(4)}\n'
            cid = f'   Content ID:     {hex(i.contentID)[2:].zfill(8)}'
            if i.content_type & ContentType.ENCRYPTED:
                cid += f' [encrypted]'
            if i.content_type & ContentType.OPTIONAL:
                cid += f' [optional]'
            contents += f'{cid}\n'
            contents += f'   Content size:   {i.content_size}\n'
            contents += f'   Content hash:   {bytes(i.content_hash).hex()}\n'
        contents = contents[:-1] # Remove last '\n'

        return (
            f'Issuer:            {self.issuer}\n'
            f'TitleID:           {hex(self.title_id)[2:].zfill(16)}\n'
            f'Title version:     {self.hdr.title_ver}\n'
            f'Contents:\n'
            f'{contents}'
        )
