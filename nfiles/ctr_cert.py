from enum import IntEnum

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from .common import *
from .ctr_sig import SigType, get_sig_size, read_sig, pack_sig

logger = logging.getLogger(__name__)

class KeyType(IntEnum):
    RSA_4096 = 0
    RSA_2048 = 1
    ECDSA_233R1 = 2

key_types = { # Each value is the size of the public key data that follows the certificate info
    KeyType.RSA_4096: 0x200 + 0x4 + 0x34,
    KeyType.RSA_2048: 0x100 + 0x4 + 0x34,
    KeyType.ECDSA_233R1: 0x3C + 0x3C,
}

# DER SubjectPublicKeyInfo header for a sect233r1 key, followed by an uncompressed point
sect233r1_der_hdr = hextobytes('3052301006072a8648ce3d020106052b8104001b033e00')

class CertificateInfo(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('issuer', c_char * 0x40),
        ('key_type', c_uint32),
        ('name', c_char * 0x40),
        ('expiration_time', c_uint32),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class RSA4096PubKey(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('mod', c_uint8 * 0x200),
        ('pub_exp', c_uint32),
        ('reserved', c_uint8 * 0x34),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class RSA2048PubKey(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('mod', c_uint8 * 0x100),
        ('pub_exp', c_uint32),
        ('reserved', c_uint8 * 0x34),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class ECCPubKey(BigEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('point', c_uint8 * 0x3C), # X and Y, 0x1E bytes each
        ('reserved', c_uint8 * 0x3C),
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

def get_key_size(key_type):
    try:
        return key_types[key_type]
    except KeyError:
        raise UnknownKeyTypeError(f'Unknown certificate key type {hex(key_type)}') from None

class CertReader:
    '''
    Signed binding of a name to a public key (RSA-4096, RSA-2048 or ECDSA sect233r1)

    file: Stream (embedded certificate, read in place), bytes, or path to a certificate
    '''

    def __init__(self, file):
        stream = open_stream(file)

        self.sig_type, self.sig = read_sig(stream)
        self.info = CertificateInfo(stream.read(sizeof(CertificateInfo)))
        self.pubkey = stream.read(get_key_size(self.info.key_type))

        logger.debug('Parsed certificate %s (issuer %s, %s)', self.name, self.issuer, self.key_type_name)

    @classmethod
    def from_base64(cls, data):
        return cls(base64.b64decode(data))

    @property
    def issuer(self):
        return self.info.issuer.decode('ascii', 'replace')

    @issuer.setter
    def issuer(self, value):
        set_fixed_str(self.info, 'issuer', value)

    @property
    def name(self):
        return self.info.name.decode('ascii', 'replace')

    @name.setter
    def name(self, value):
        set_fixed_str(self.info, 'name', value)

    @property
    def key_type(self):
        try:
            return KeyType(self.info.key_type)
        except ValueError:
            return self.info.key_type

    @property
    def key_type_name(self):
        key_type = self.key_type
        return key_type.name if isinstance(key_type, KeyType) else hex(key_type)

    @property
    def expiration(self):
        return self.info.expiration_time

    @property
    def signature_body(self):
        return bytes(self.info) + self.pubkey

    def size(self):
        return 4 + get_sig_size(self.sig_type).total + sizeof(CertificateInfo) + len(self.pubkey)

    def encode(self):
        if len(self.pubkey) != get_key_size(self.info.key_type):
            raise ValueError(f'Public key is {hex(len(self.pubkey))} bytes, {self.key_type_name} needs {hex(get_key_size(self.info.key_type))}')
        return pack_sig(self.sig_type, self.sig) + self.signature_body

    def __bytes__(self):
        return self.encode()

    def __len__(self):
        return self.size()

    def __eq__(self, other):
        if not isinstance(other, CertReader):
            return NotImplemented
        return self.encode() == other.encode()

    def _rsa_pubkey(self):
        if self.info.key_type == KeyType.RSA_4096:
            return RSA4096PubKey(self.pubkey)
        return RSA2048PubKey(self.pubkey)

    def _ecc_pubkey(self):
        der = sect233r1_der_hdr + b'\x04' + bytes(ECCPubKey(self.pubkey).point)
        return serialization.load_der_public_key(der)

    def public_key(self):
        '''
        Returns a Crypto.PublicKey.RSA.RsaKey for RSA certificates,
        or a cryptography EllipticCurvePublicKey for ECDSA certificates
        '''

        key_type = self.info.key_type
        if key_type in (KeyType.RSA_4096, KeyType.RSA_2048):
            pubkey = self._rsa_pubkey()
            try:
                return RSA.construct((readbe(bytes(pubkey.mod)), pubkey.pub_exp))
            except ValueError as e:
                raise UnsupportedCertificateExportError(f'Invalid RSA key in certificate {self.name}: {e}') from e
        elif key_type == KeyType.ECDSA_233R1:
            try:
                return self._ecc_pubkey()
            except (ValueError, UnsupportedAlgorithm) as e:
                raise UnsupportedCertificateExportError(f'Cannot load sect233r1 key in certificate {self.name}: {e}') from e
        raise UnsupportedCertificateExportError(f'Unknown certificate key type {hex(key_type)}')

    def export_key(self):
        '''
        Returns the public key as a PEM encoded SubjectPublicKeyInfo string
        '''

        key = self.public_key()
        if self.info.key_type == KeyType.ECDSA_233R1:
            return key.public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo).decode()
        return key.export_key('PEM').decode()

    def verify(self, sig: bytes, data: bytes):
        '''
        Returns True if 'sig' is a SHA256 signature of 'data' made with this certificate's key

        RSA keys check PKCS#1 v1.5 signatures; ECDSA keys check raw r || s signatures
        '''

        key_type = self.info.key_type
        if key_type in (KeyType.RSA_4096, KeyType.RSA_2048):
            pubkey = self._rsa_pubkey()
            return Crypto.verify_rsa_sha256(bytes(pubkey.mod), data, sig, pubkey.pub_exp)
        elif key_type == KeyType.ECDSA_233R1:
            if len(sig) != 0x3C:
                return False
            try:
                key = self._ecc_pubkey()
            except ValueError: # Point is not on the curve
                return False
            except UnsupportedAlgorithm as e:
                raise UnsupportedCertificateExportError(f'Cannot load sect233r1 key in certificate {self.name}: {e}') from e
            r = readbe(sig[:0x1E])
            s = readbe(sig[0x1E:])
            try:
                key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
                return True
            except InvalidSignature:
                return False
        raise UnknownKeyTypeError(f'Unknown certificate key type {hex(key_type)}')

    def verify_cert(self, cert: 'CertReader'):
        return self.verify(cert.sig, cert.signature_body)

    def __str__(self):
        return (
            f'Name:              {self.name}\n'
            f'Issuer:            {self.issuer}\n'
            f'Key type:          {self.key_type_name}\n'
            f'Signature type:    {SigType(self.sig_type).name}\n'
            f'Expiration:        {hex(self.expiration)[2:].zfill(8)}'
        )
