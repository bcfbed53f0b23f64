from enum import IntEnum
from typing import NamedTuple

from .common import *

class SigType(IntEnum):
    RSA_4096_SHA1 = 0x00010000
    RSA_2048_SHA1 = 0x00010001
    ECC_SHA1 = 0x00010002
    RSA_4096_SHA256 = 0x00010003
    RSA_2048_SHA256 = 0x00010004
    ECDSA_SHA256 = 0x00010005

class SigSize(NamedTuple):
    signature: int
    padding: int

    @property
    def total(self):
        return self.signature + self.padding

signature_types = { # Each tuple is (signature size, size of padding after signature)
    # RSA_4096 SHA1 (unused on 3DS)
    SigType.RSA_4096_SHA1: SigSize(0x200, 0x3C),
    # RSA_2048 SHA1 (unused on 3DS)
    SigType.RSA_2048_SHA1: SigSize(0x100, 0x3C),
    # Elliptic Curve with SHA1 (unused on 3DS)
    SigType.ECC_SHA1: SigSize(0x3C, 0x40),
    # RSA_4096 SHA256
    SigType.RSA_4096_SHA256: SigSize(0x200, 0x3C),
    # RSA_2048 SHA256
    SigType.RSA_2048_SHA256: SigSize(0x100, 0x3C),
    # ECDSA with SHA256
    SigType.ECDSA_SHA256: SigSize(0x3C, 0x40),
}

def get_sig_size(sig_type) -> SigSize:
    try:
        return signature_types[sig_type]
    except KeyError:
        raise UnknownSignatureTypeError(f'Unknown signature type {hex(sig_type)}') from None

def read_sig(stream):
    '''
    Reads a signature header: 4-byte type, signature, padding (skipped)

    Returns (sig_type, sig)
    '''

    sig_type = stream.readbe(4)
    sig_size = get_sig_size(sig_type)
    sig = stream.read(sig_size.signature)
    stream.skip(sig_size.padding)
    return SigType(sig_type), sig

def pack_sig(sig_type, sig):
    sig_size = get_sig_size(sig_type)
    if len(sig) != sig_size.signature:
        raise ValueError(f'Signature is {hex(len(sig))} bytes, {SigType(sig_type).name} needs {hex(sig_size.signature)}')
    return int.to_bytes(sig_type, 4, 'big') + sig + (b'\x00' * sig_size.padding)
