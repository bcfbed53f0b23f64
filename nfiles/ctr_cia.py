from typing import NamedTuple

from .common import *
from .ctr_cert import CertReader
from .ctr_tik import tikReader
from .ctr_tmd import TMDReader, ContentType
from .ctr_smdh import SMDHReader

logger = logging.getLogger(__name__)

class CIAHdr(LittleEndianStructure):
    _fields_ = [
        ('hdr_size', c_uint32), # 0x2020 bytes
        ('type', c_uint16),
        ('format_ver', c_uint16),
        ('cert_chain_size', c_uint32),
        ('tik_size', c_uint32),
        ('tmd_size', c_uint32),
        ('meta_size', c_uint32),
        ('content_size', c_uint64),
        ('content_index', c_uint8 * 0x2000),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class CIAMeta(LittleEndianStructure):
    _fields_ = [
        ('dependencies', c_uint64 * 0x30), # TitleID dependency list
        ('reserved1', c_uint8 * 0x180),
        ('core_ver', c_uint32),
        ('reserved2', c_uint8 * 0xFC),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class CIAContent(NamedTuple):
    id: int
    index: int
    data: bytes # As stored in the CIA, i.e. still encrypted if the TMD says so

def decode_content_index(content_index):
    '''
    Returns the set of content indexes flagged in a CIA content index bitmap

    Within each byte the most significant bit is the lowest content index
    '''

    active = set()
    for i, byte in enumerate(content_index):
        if not byte:
            continue
        for v in range(8):
            if byte & (1 << v):
                active.add(i * 8 + (7 - v))
    return active

def encode_content_index(indexes, size=0x2000):
    content_index = bytearray(size)
    for i in indexes:
        content_index[i // 8] |= (0b10000000 >> (i % 8))
    return bytes(content_index)

class CIAReader:
    '''
    file: Stream, bytes, or path to a CIA

    Contents are sliced out in the order the TMD lists them and are never decrypted
    '''

    def __init__(self, file):
        stream = open_stream(file)

        hdr_size = readle(stream.peek(4))
        if hdr_size != CIA_HDR_SIZE:
            raise MalformedHeaderError(f'Invalid CIA header size. Expected {hex(CIA_HDR_SIZE)}, got {hex(hdr_size)}')
        self.hdr = CIAHdr(stream.read(CIA_HDR_SIZE))
        stream.align(BLOCK_SIZE)

        cert_chain_start = stream.tell()
        self.ca_cert = CertReader(stream)
        self.tik_cert = CertReader(stream)
        self.tmd_cert = CertReader(stream)
        cert_chain_size = stream.tell() - cert_chain_start
        if cert_chain_size != self.hdr.cert_chain_size:
            warnings.warn(f'CIA header declares a {hex(self.hdr.cert_chain_size)} byte certificate chain, parsed {hex(cert_chain_size)} bytes')
        stream.align(BLOCK_SIZE)

        self.tik = tikReader(stream.read(self.hdr.tik_size))
        stream.align(BLOCK_SIZE)

        self.tmd = TMDReader(stream.read(self.hdr.tmd_size))
        stream.align(BLOCK_SIZE)

        content_region = stream.read(self.hdr.content_size)

        self.meta = None
        self.icon = None
        if self.hdr.meta_size:
            self.meta = CIAMeta(stream.read(sizeof(CIAMeta)))
            self.icon = SMDHReader(stream)

        self.contents = self._slice_contents(content_region)

        logger.debug('Parsed CIA for %016x (%d contents, meta: %s)', self.tmd.title_id, len(self.contents), self.meta is not None)

    def _slice_contents(self, content_region):
        # Check if every content enabled in the content index is listed in the TMD
        active_contents = set(self.active_contents())
        tmd_contents = {i.content_index for i in self.tmd.content_chunks}
        missing = len(active_contents - tmd_contents)
        if missing:
            raise ContentIndexMismatchError(missing)

        contents = []
        contents_stream = Stream(content_region)
        for i in self.tmd.content_chunks:
            contents.append(CIAContent(i.contentID, i.content_index, contents_stream.read(i.content_size)))

        if contents_stream.remaining():
            warnings.warn(f'{hex(contents_stream.remaining())} bytes of content data left after the last TMD content')
        return contents

    @classmethod
    def from_base64(cls, data):
        return cls(base64.b64decode(data))

    @property
    def cert_chain(self):
        return [self.ca_cert, self.tik_cert, self.tmd_cert]

    def active_contents(self):
        return sorted(decode_content_index(bytes(self.hdr.content_index)))

    @property
    def dependencies(self):
        if self.meta is None:
            return []
        return [i for i in self.meta.dependencies if i]

    @property
    def core_version(self):
        if self.meta is None:
            return None
        return self.meta.core_ver

    def _content_region(self):
        content_data = b''.join([i.data for i in self.contents])
        return content_data + b'\x00' * (self.hdr.content_size - len(content_data))

    def size(self):
        size = roundup(CIA_HDR_SIZE, BLOCK_SIZE)
        size += roundup(sum([i.size() for i in self.cert_chain]), BLOCK_SIZE)
        size += roundup(self.tik.size(), BLOCK_SIZE)
        size += roundup(self.tmd.size(), BLOCK_SIZE)
        size += max(self.hdr.content_size, sum([len(i.data) for i in self.contents]))
        if self.meta is not None:
            size += sizeof(CIAMeta) + self.icon.size()
        return size

    def encode(self):
        data = pad_to(bytes(self.hdr))
        data += pad_to(b''.join([i.encode() for i in self.cert_chain]))
        data += pad_to(self.tik.encode())
        data += pad_to(self.tmd.encode())
        data += self._content_region()
        if self.meta is not None:
            data += bytes(self.meta) + self.icon.encode()
        return data

    def __bytes__(self):
        return self.encode()

    def __len__(self):
        return self.size()

    def __eq__(self, other):
        if not isinstance(other, CIAReader):
            return NotImplemented
        return self.encode() == other.encode()

    def verify(self):
        '''
        Checks the TMD hash tables, the hashes of unencrypted contents and every signature
        against the certificate chain embedded in the CIA

        Returns (hash_check, sig_check), each a list of (name, bool); deciding whether to trust the CIA is up to the caller
        '''

        hash_check = self.tmd.verify_hashes()
        for content, record in zip(self.contents, self.tmd.content_chunks):
            if record.content_type & ContentType.ENCRYPTED: # Hash is of the decrypted content
                continue
            name = f'{hex(content.index)[2:].zfill(4)}.{hex(content.id)[2:].zfill(8)}'
            hash_check.append((name, Crypto.sha256(content.data) == bytes(record.content_hash)))

        sig_check = []
        sig_check.append(('CIA Cert (XS)', self.ca_cert.verify_cert(self.tik_cert)))
        sig_check.append(('CIA Cert (CP)', self.ca_cert.verify_cert(self.tmd_cert)))
        sig_check.append(('Ticket', self.tik.verify(self.tik_cert)))
        sig_check.append(('TMD Header', self.tmd.verify(self.tmd_cert)))

        for i in hash_check + sig_check:
            logger.info(' > {0:15} {1:4}'.format(i[0] + ':', 'GOOD' if i[1] else 'FAIL'))
        return hash_check, sig_check

    def __str__(self):
        contents = ''
        for i in self.active_contents():
            contents += f'   > {hex(i)[2:].zfill(4)}\n'

        tik = ''.join(['  ' + i + '\n' for i in self.tik.__str__().split('\n')])
        tmd = ''.join(['  ' + i + '\n' for i in self.tmd.__str__().split('\n')])
        meta = ''
        if self.meta is not None:
            icon = ''.join(['  ' + i + '\n' for i in self.icon.__str__().split('\n')])
            deps = ''.join([f'   > {hex(i)[2:].zfill(16)}\n' for i in self.dependencies])
            meta = (
                f'Meta:\n'
                f'  Core version: {self.core_version}\n'
                f'  Dependencies:\n'
                f'{deps}'
                f'{icon}'
            )
        return (
            f'CIA:\n'
            f'  Enabled contents:\n'
            f'{contents}'
            f'Certificates:\n'
            f'  {self.ca_cert.name}, {self.tik_cert.name}, {self.tmd_cert.name}\n'
            f'Ticket:\n'
            f'{tik}'
            f'TMD:\n'
            f'{tmd}'
            f'{meta}'
        )[:-1] # Remove last '\n'
