"""
Configuration constants for the media describer.
"""
import os
from pathlib import Path

# --- File Type Definitions ---
IMAGE_EXTS = {'.png', '.jpg', '.jpeg', '.gif', '.webp', '.bmp', '.svg', '.ico', '.tiff', '.tif', '.avif'}
VIDEO_EXTS = {'.mp4', '.avi', '.mov', '.mkv', '.webm', '.flv'}
AUDIO_EXTS = {'.mp3', '.wav', '.ogg', '.flac', '.aac', '.m4a'}
PDF_EXTS = {'.pdf'}
TEXT_EXTS = {'.txt', '.md'}

MULTIMEDIA_EXTS = IMAGE_EXTS | VIDEO_EXTS | AUDIO_EXTS | PDF_EXTS

# Files a vision model can take directly as a base64 data URI
BASE64_SENDABLE_EXTS = {'.png', '.jpg', '.jpeg', '.gif', '.webp', '.bmp', '.svg', '.pdf'}

# Extension to Category Mapping
EXT_TO_CATEGORY = {}
for ext in IMAGE_EXTS: EXT_TO_CATEGORY[ext] = 'image'
for ext in VIDEO_EXTS: EXT_TO_CATEGORY[ext] = 'video'
for ext in AUDIO_EXTS: EXT_TO_CATEGORY[ext] = 'audio'
for ext in PDF_EXTS: EXT_TO_CATEGORY[ext] = 'pdf'

MIME_MAP = {
    '.png': 'image/png', '.jpg': 'image/jpeg', '.jpeg': 'image/jpeg',
    '.gif': 'image/gif', '.webp': 'image/webp', '.bmp': 'image/bmp',
    '.svg': 'image/svg+xml', '.ico': 'image/x-icon',
    '.tiff': 'image/tiff', '.tif': 'image/tiff', '.avif': 'image/avif',
    '.mp4': 'video/mp4', '.avi': 'video/x-msvideo', '.mov': 'video/quicktime',
    '.mkv': 'video/x-matroska', '.webm': 'video/webm', '.flv': 'video/x-flv',
    '.mp3': 'audio/mpeg', '.wav': 'audio/wav', '.ogg': 'audio/ogg',
    '.flac': 'audio/flac', '.aac': 'audio/aac', '.m4a': 'audio/mp4',
    '.pdf': 'application/pdf',
}
DEFAULT_MIME = 'application/octet-stream'

# --- Sidecar ---
SIDECAR_SUFFIX = '.desc.json'

# --- Embedded Mirror ---
PNG_EXTS = {'.png'}
JPEG_EXTS = {'.jpg', '.jpeg'}
EMBEDDABLE_EXTS = PNG_EXTS | JPEG_EXTS

# Text chunk keywords checked on read, in priority order of appearance
PNG_READ_KEYWORDS = ('Description', 'Comment')
PNG_WRITE_KEYWORD = 'Description'

# Labels shown when embedded text carries no 'maid' field
EMBEDDED_LABEL = 'Embedded'
EXIF_LABEL = 'EXIF'
NATIVE_SEGMENT = 'Native'

MANUAL_EDIT_MODEL = 'manual-edit'
DEFAULT_PRESET = 'PresetDefault'

# --- Hashing ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading


def knowledge_root() -> Path:
    """Root folder holding one sub-folder per diary."""
    return Path(os.environ.get('KNOWLEDGEBASE_ROOT_PATH', 'dailynote'))
