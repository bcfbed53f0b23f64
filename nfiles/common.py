import os, base64, hashlib, logging, warnings

from ctypes import *
from Crypto.PublicKey import RSA
from Crypto.Hash import SHA256
from Crypto.Signature import pkcs1_15

BLOCK_SIZE = 0x40 # CIA sections are aligned to 64 byte blocks
CIA_HDR_SIZE = 0x2020
CIA_META_SIZE = 0x3AC0
SMDH_SIZE = 0x36C0

class NFilesError(Exception):
    """Base class for every parse error raised by nfiles."""

class MalformedHeaderError(NFilesError):
    pass

class UnknownSignatureTypeError(NFilesError, ValueError):
    pass

class UnknownKeyTypeError(NFilesError, ValueError):
    pass

class TruncatedInputError(NFilesError):
    pass

class ContentIndexMismatchError(NFilesError):
    def __init__(self, missing):
        self.missing = missing
        super().__init__(f'TMD is missing {missing} content records from the CIA content index')

class UnsupportedCertificateExportError(NFilesError, ValueError):
    pass

def readle(b):
    return int.from_bytes(b, 'little')

def readbe(b):
    return int.from_bytes(b, 'big')

def hextobytes(s):
    return bytes.fromhex(s)

def align(size, alignment): # Returns (min) number needed to be added to 'size' so 'size' is a multiple of 'alignment'
    if size % alignment != 0:
        return alignment - (size % alignment)
    else:
        return 0

def roundup(size, alignment):
    if size % alignment != 0:
        return size + alignment - (size % alignment)
    else:
        return size

def pad_to(data: bytes, alignment=BLOCK_SIZE):
    return data + b'\x00' * align(len(data), alignment)

def set_fixed_str(struct, field, value: str):
    '''
    Writes 'value' into a fixed width c_char field of 'struct', zero filling the rest of the field
    '''

    desc = getattr(type(struct), field)
    data = value.encode('ascii')
    if len(data) > desc.size:
        raise ValueError(f'{field} is at most {desc.size} characters, got {len(data)}')
    # Plain assignment to a c_char array stops at the first NUL and keeps the old tail
    memmove(addressof(struct) + desc.offset, data.ljust(desc.size, b'\x00'), desc.size)

class Stream:
    '''
    Read head over an immutable byte buffer, shared by nested parsers.

    Every read moves the head forward. Reading past the end raises TruncatedInputError
    '''

    def __init__(self, data=b''):
        if isinstance(data, Stream):
            data = data.buf
        self.buf = bytes(data)
        self.offset = 0

    def __len__(self):
        return len(self.buf)

    def remaining(self):
        return max(len(self.buf) - self.offset, 0)

    def tell(self):
        return self.offset

    def seek(self, offset):
        if offset < 0 or offset > len(self.buf):
            raise TruncatedInputError(f'Cannot seek to {hex(offset)}, buffer is {hex(len(self.buf))} bytes')
        self.offset = offset

    def skip(self, size):
        self.seek(self.offset + size)

    def align(self, alignment=BLOCK_SIZE):
        self.offset = roundup(self.offset, alignment)

    def peek(self, size=1):
        if size > self.remaining():
            raise TruncatedInputError(f'Cannot peek {hex(size)} bytes at {hex(self.offset)}, {hex(self.remaining())} left')
        return self.buf[self.offset:self.offset + size]

    def read(self, size):
        if size < 0 or size > self.remaining():
            raise TruncatedInputError(f'Cannot read {hex(size)} bytes at {hex(self.offset)}, {hex(self.remaining())} left')
        data = self.buf[self.offset:self.offset + size]
        self.offset += size
        return data

    def readbe(self, size):
        return readbe(self.read(size))

    def readle(self, size):
        return readle(self.read(size))

def open_stream(file):
    '''
    file: Stream (parse in place), bytes-like object, or path to a file
    '''

    if isinstance(file, Stream):
        return file
    if isinstance(file, (str, os.PathLike)):
        with open(file, 'rb') as f:
            return Stream(f.read())
    return Stream(file)

class Crypto:
    def sha256(data):
        return hashlib.sha256(data).digest()

    def verify_rsa_sha256(mod: bytes, data: bytes, sig: bytes, exp=0x10001):
        h = SHA256.new(data)
        try:
            x = pkcs1_15.new(RSA.construct((readbe(mod), exp)))
            x.verify(h, sig)
            return True
        except (ValueError, TypeError):
            return False
