"""
Audio package
Codec identification, metadata, encoders and cover art
"""

from .codecs import AudioGateway, AudioMetadata, Codec, MutagenGateway
from .encoder import Encoder, LossyEncoder, MP3Encoder, run_command
from .cover import downscale_cover

__all__ = [
    'AudioGateway',
    'AudioMetadata',
    'Codec',
    'MutagenGateway',
    'Encoder',
    'LossyEncoder',
    'MP3Encoder',
    'run_command',
    'downscale_cover',
]
