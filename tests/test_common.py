from ctypes import BigEndianStructure, c_char, c_uint32

import pytest

from nfiles.common import (
    Stream, open_stream, Crypto, NFilesError, TruncatedInputError, ContentIndexMismatchError,
    align, roundup, pad_to, readbe, readle, set_fixed_str,
)

from builders import rsa_sign


class TestStream:
    def test_read(self):
        stream = Stream(b'\x00\x01\x02\x03\x04\x05')
        assert stream.read(2) == b'\x00\x01'
        assert stream.tell() == 2
        assert stream.readbe(2) == 0x0203
        assert stream.readle(2) == 0x0504
        assert stream.remaining() == 0

    def test_read_past_end(self):
        stream = Stream(b'\x00' * 4)
        stream.read(3)
        with pytest.raises(TruncatedInputError):
            stream.read(2)
        assert stream.tell() == 3

    def test_peek_does_not_move(self):
        stream = Stream(b'SMDH\x00')
        assert stream.peek(4) == b'SMDH'
        assert stream.tell() == 0
        with pytest.raises(TruncatedInputError):
            stream.peek(6)

    def test_skip_backwards(self):
        stream = Stream(bytes(range(16)))
        stream.skip(12)
        stream.skip(-8)
        assert stream.read(1) == b'\x04'
        with pytest.raises(TruncatedInputError):
            stream.skip(-6)

    def test_align(self):
        stream = Stream(b'\x00' * 0x100)
        stream.read(0x41)
        stream.align()
        assert stream.tell() == 0x80
        stream.align()
        assert stream.tell() == 0x80

    def test_align_past_end(self):
        stream = Stream(b'\x00' * 0x50)
        stream.read(0x41)
        stream.align()
        assert stream.remaining() == 0
        with pytest.raises(TruncatedInputError):
            stream.read(1)

    def test_open_stream(self, tmp_path):
        path = tmp_path / 'file.bin'
        path.write_bytes(b'\x12\x34')
        assert open_stream(path).read(2) == b'\x12\x34'
        assert open_stream(str(path)).read(2) == b'\x12\x34'
        assert open_stream(bytearray(b'\x56')).read(1) == b'\x56'

        stream = Stream(b'\x00\x01')
        assert open_stream(stream) is stream


class TestHelpers:
    def test_align(self):
        assert align(0x2020, 0x40) == 0x20
        assert align(0x40, 0x40) == 0
        assert roundup(0x2020, 0x40) == 0x2040
        assert roundup(0, 0x40) == 0

    def test_pad_to(self):
        assert pad_to(b'\x01' * 3) == b'\x01' * 3 + b'\x00' * 0x3D
        assert pad_to(b'') == b''

    def test_set_fixed_str(self):
        class Names(BigEndianStructure):
            _pack_ = 1
            _fields_ = [('magic', c_uint32), ('name', c_char * 0x10)]

        names = Names.from_buffer_copy(b'\x00' * 4 + b'CA00000003'.ljust(0x10, b'\x00'))
        set_fixed_str(names, 'name', 'XS')
        assert bytes(names)[4:] == b'XS' + b'\x00' * 0xE
        with pytest.raises(ValueError):
            set_fixed_str(names, 'name', 'X' * 0x11)

    def test_read_int(self):
        assert readbe(b'\x00\x01\x00\x04') == 0x10004
        assert readle(b'\x20\x20\x00\x00') == 0x2020

    def test_errors(self):
        e = ContentIndexMismatchError(3)
        assert e.missing == 3
        assert isinstance(e, NFilesError)
        assert issubclass(TruncatedInputError, NFilesError)


class TestCrypto:
    def test_sha256(self):
        assert Crypto.sha256(b'').hex() == 'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'

    def test_rsa_sha256(self, ca_key):
        mod = ca_key.n.to_bytes(0x100, 'big')
        sig = rsa_sign(ca_key, b'data')
        assert len(sig) == 0x100
        assert Crypto.verify_rsa_sha256(mod, b'data', sig)
        assert not Crypto.verify_rsa_sha256(mod, b'other data', sig)
        assert not Crypto.verify_rsa_sha256(mod, b'data', b'\x00' * 0x100)

    def test_rsa_sha256_bad_key(self):
        assert not Crypto.verify_rsa_sha256(b'\x00' * 0x100, b'data', b'\x00' * 0x100)
