import pytest
from Crypto.PublicKey import RSA

from builders import make_cert, make_ticket, make_tmd, rsa_pubkey


@pytest.fixture(scope='session')
def ca_key():
    return RSA.generate(2048)


@pytest.fixture(scope='session')
def xs_key():
    return RSA.generate(2048)


@pytest.fixture(scope='session')
def cp_key():
    return RSA.generate(2048)


@pytest.fixture(scope='session')
def cert_chain(ca_key, xs_key, cp_key):
    '''CA, ticket signer and TMD signer certificates, in CIA order'''
    ca = make_cert('Root', 'CA00000003', 1, rsa_pubkey(ca_key), sig_type=0x10003)
    xs = make_cert('Root-CA00000003', 'XS0000000c', 1, rsa_pubkey(xs_key), signer=ca_key)
    cp = make_cert('Root-CA00000003', 'CP0000000b', 1, rsa_pubkey(cp_key), signer=ca_key)
    return [ca, xs, cp]


@pytest.fixture
def contents():
    return [
        (0x00000000, 0, 0x0000, bytes(range(256)) * 4),
        (0x00000001, 1, 0x0000, b'\x5a' * 0x230),
        (0x00000002, 2, 0x4001, b'\xa5' * 0x100),
    ]


@pytest.fixture
def signed_ticket(xs_key):
    return make_ticket(signer=xs_key)


@pytest.fixture
def signed_tmd(cp_key, contents):
    return make_tmd(contents, signer=cp_key)
