from typing import NamedTuple

from .common import *

logger = logging.getLogger(__name__)

languages = [
    'Japanese',
    'English',
    'French',
    'German',
    'Italian',
    'Spanish',
    'Simplified Chinese',
    'Korean',
    'Dutch',
    'Portuguese',
    'Russian',
    'Traditional Chinese',
]

class SMDHAppTitle(LittleEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('short_desc', c_uint8 * 0x80),
        ('long_desc', c_uint8 * 0x100),
        ('publisher', c_uint8 * 0x80),
    ]

class SMDHSettings(LittleEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('ratings', c_uint8 * 0x10),
        ('region_lockout', c_uint32),
        ('matchmaker_id', c_uint8 * 0xC),
        ('flags', c_uint32),
        ('eula_ver', c_uint16),
        ('reserved', c_uint16),
        ('anim_default_frame', c_uint32),
        ('cec_id', c_uint32),
    ]

class SMDHHdr(LittleEndianStructure):
    _pack_ = 1

    _fields_ = [
        ('magic', c_char * 4),
        ('version', c_uint16),
        ('reserved1', c_uint16),
        ('titles', SMDHAppTitle * 16),
        ('settings', SMDHSettings),
        ('reserved2', c_uint8 * 8),
        ('icon_small', c_uint8 * 0x480), # 24x24 RGB565, tiled
        ('icon_large', c_uint8 * 0x1200), # 48x48 RGB565, tiled
    ]

    def __new__(cls, buf):
        return cls.from_buffer_copy(buf)

    def __init__(self, data):
        pass

class AppTitle(NamedTuple):
    short_desc: str
    long_desc: str
    publisher: str

def utf16_str(b):
    return bytes(b).decode('utf-16le', 'replace').split('\x00')[0]

class SMDHReader:
    '''
    Icon and title information block found in ExeFS 'icon' and in the CIA meta section

    file: Stream (read in place), bytes, or path to an SMDH file
    '''

    def __init__(self, file):
        stream = open_stream(file)

        magic = stream.peek(4)
        if magic != b'SMDH':
            raise MalformedHeaderError(f'Invalid SMDH magic {magic}')
        self.hdr = SMDHHdr(stream.read(SMDH_SIZE))

        logger.debug('Parsed SMDH v%d', self.hdr.version)

    @property
    def titles(self):
        return [AppTitle(utf16_str(i.short_desc), utf16_str(i.long_desc), utf16_str(i.publisher)) for i in self.hdr.titles]

    def get_title(self, language='English'):
        return self.titles[languages.index(language)]

    @property
    def icon_small(self):
        return bytes(self.hdr.icon_small)

    @property
    def icon_large(self):
        return bytes(self.hdr.icon_large)

    def size(self):
        return sizeof(SMDHHdr)

    def encode(self):
        return bytes(self.hdr)

    def __bytes__(self):
        return self.encode()

    def __len__(self):
        return self.size()

    def __eq__(self, other):
        if not isinstance(other, SMDHReader):
            return NotImplemented
        return self.encode() == other.encode()

    def __str__(self):
        title = self.get_title('English')
        return (
            f'Short description: {title.short_desc}\n'
            f'Long description:  {title.long_desc}\n'
            f'Publisher:         {title.publisher}\n'
            f'Region lockout:    {hex(self.hdr.settings.region_lockout)[2:].zfill(8)}'
        )
