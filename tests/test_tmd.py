import pytest

from nfiles.common import TruncatedInputError
from nfiles.ctr_sig import SigType
from nfiles.ctr_cert import CertReader
from nfiles.ctr_tmd import TMDReader, ContentType, content_info_count

from builders import make_tmd


class TestTMD:
    def test_version_1(self, contents):
        tmd = TMDReader(make_tmd(contents, version=1, title_id=0x0004000000055E00, title_ver=0x0C20))
        assert tmd.hdr.format_ver == 1
        assert tmd.title_id == 0x0004000000055E00
        assert tmd.title_version == 0x0C20
        assert tmd.issuer == 'Root-CA00000003-CP0000000b'
        assert len(tmd.content_infos) == content_info_count == 64
        assert len(tmd.content_info_records_hash) == 0x20
        assert len(tmd.content_chunks) == 3
        assert tmd.certs == []

    @pytest.mark.parametrize('version', [0, 2])
    def test_other_versions(self, contents, version):
        tmd = TMDReader(make_tmd(contents, version=version))
        assert tmd.hdr.format_ver == version
        assert tmd.signature_body == tmd.encode()[0x140:0x140 + 0xA4]
        assert tmd.content_infos == []
        assert tmd.content_info_records_hash is None
        assert len(tmd.content_chunks) == 3
        assert tmd.verify_hashes() == []

    def test_shorter_issuer(self, contents):
        tmd = TMDReader(make_tmd(contents))
        tmd.issuer = 'Root'
        assert tmd.issuer == 'Root'
        assert tmd.signature_body[:0x40] == b'Root' + b'\x00' * 0x3C
        assert tmd.encode() == make_tmd(contents, issuer='Root')

    def test_content_records(self, contents):
        tmd = TMDReader(make_tmd(contents))
        chunk = tmd.content_chunks[2]
        assert chunk.contentID == 2
        assert chunk.content_index == 2
        assert chunk.content_size == 0x100
        assert chunk.content_type & ContentType.ENCRYPTED
        assert chunk.content_type & ContentType.OPTIONAL
        assert not tmd.content_chunks[0].content_type & ContentType.ENCRYPTED

        by_index = tmd.content_records_by_index()
        assert sorted(by_index) == [0, 1, 2]
        assert by_index[1].content_size == 0x230

    def test_hashes(self, contents):
        tmd = TMDReader(make_tmd(contents))
        assert tmd.verify_hashes() == [('TMD CntInfo', True), ('TMD CntChunk', True)]

    def test_tampered_chunk(self, contents):
        tmd = TMDReader(make_tmd(contents))
        tmd.content_chunks[1].content_size = 0x240
        assert tmd.verify_hashes() == [('TMD CntInfo', True), ('TMD CntChunk', False)]

    def test_tampered_info(self, contents):
        tmd = TMDReader(make_tmd(contents))
        tmd.content_infos[0].content_command_count = 2
        assert tmd.verify_hashes() == [('TMD CntInfo', False), ('TMD CntChunk', False)]

    def test_signed(self, cp_key, cert_chain, contents):
        cp = CertReader(cert_chain[2])
        tmd = TMDReader(make_tmd(contents, signer=cp_key))
        assert tmd.verify(cp)
        assert not tmd.verify()
        tmd.hdr.title_ver = 0
        assert not tmd.verify(cp)

    def test_signature_covers_info_hash(self, cp_key, cert_chain, contents):
        cp = CertReader(cert_chain[2])
        tmd = TMDReader(make_tmd(contents, signer=cp_key))
        tmd.content_info_records_hash = b'\x00' * 0x20
        assert not tmd.verify(cp)

    def test_cdn_certificates(self, cp_key, cert_chain, contents):
        data = make_tmd(contents, signer=cp_key, certs=cert_chain[2] + cert_chain[0])
        tmd = TMDReader(data)
        assert tmd.self_cert.name == 'CP0000000b'
        assert tmd.ca_cert.name == 'CA00000003'
        assert tmd.verify()
        assert tmd.ca_cert.verify_cert(tmd.self_cert)

    @pytest.mark.parametrize('version', [0, 1])
    @pytest.mark.parametrize('with_certs', [False, True])
    def test_round_trip(self, version, with_certs, contents, cert_chain):
        certs = cert_chain[2] + cert_chain[0] if with_certs else b''
        data = make_tmd(contents, version=version, certs=certs)
        tmd = TMDReader(data)
        assert tmd.encode() == data
        assert tmd.size() == len(data)
        assert TMDReader(bytes(tmd)) == tmd

    def test_ecdsa_signature(self, contents):
        tmd = TMDReader(make_tmd(contents, sig_type=0x10005))
        assert tmd.sig_type == SigType.ECDSA_SHA256
        assert len(tmd.sig) == 0x3C

    def test_encode_missing_infos(self, contents):
        tmd = TMDReader(make_tmd(contents))
        tmd.content_infos.pop()
        with pytest.raises(ValueError):
            tmd.encode()

    def test_truncated(self, contents):
        data = make_tmd(contents)
        with pytest.raises(TruncatedInputError):
            TMDReader(data[:-0x10])

    def test_str(self, contents):
        out = str(TMDReader(make_tmd(contents, title_id=0x0004000000055E00)))
        assert '0004000000055e00' in out
        assert '[encrypted]' in out
