import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .. import config
from ..exceptions import MalformedFormatError, MirrorWriteError
from ..models import EmbeddedMetadata, Provenance
from ..scanning.hasher import read_bytes, write_bytes
from . import jpeg, png


def probe_label(text: str, default: str) -> Tuple[str, Dict[str, Any]]:
    """
    Embedded text that happens to be a JSON object may name its author in a
    'maid' field; that becomes the label. The text itself is never altered.
    """
    try:
        data = json.loads(text)
    except ValueError:
        return default, {}
    if not isinstance(data, dict):
        return default, {}
    label = data.get('maid') or default
    return str(label), data


class EmbeddedMetadataMirror:
    """
    Reads and writes the single 'Description' text kept inside PNG and JPEG
    files, picking the codec from the file extension.
    """

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() in config.EMBEDDABLE_EXTS

    def read(self, path: Path) -> Optional[EmbeddedMetadata]:
        ext = path.suffix.lower()
        if ext not in config.EMBEDDABLE_EXTS:
            return None

        try:
            buf = read_bytes(path)
            if ext in config.PNG_EXTS:
                text = png.read_description(buf)
                if text is None:
                    return None
                source = Provenance.EMBEDDED_PNG
                default_label = config.EMBEDDED_LABEL
            else:
                found = jpeg.read_description(buf)
                if found is None:
                    return None
                text, source = found
                default_label = config.EXIF_LABEL if source is Provenance.EMBEDDED_EXIF else config.EMBEDDED_LABEL
        except FileNotFoundError:
            return None
        except (OSError, MalformedFormatError) as e:
            logging.warning(f"Embedded metadata read failed for {path}: {e}")
            return None

        label, original = probe_label(text, default_label)
        return EmbeddedMetadata(
            preset_name=label,
            description=text,
            source=source,
            original_metadata=original,
        )

    def write(self, path: Path, text: str) -> bool:
        """
        Stores `text` inside the file. Returns False when there was nothing
        to do (blank text, unsupported format, oversize comment).
        """
        ext = path.suffix.lower()
        if ext not in config.EMBEDDABLE_EXTS:
            return False

        try:
            buf = read_bytes(path)
            if ext in config.PNG_EXTS:
                new_buf = png.embed_description(buf, text)
            else:
                new_buf = jpeg.embed_description(buf, text)
            if new_buf is None:
                return False
            write_bytes(path, new_buf)
        except (OSError, MalformedFormatError) as e:
            raise MirrorWriteError(f"Could not embed description into {path}: {e}") from e

        logging.debug(f"Embedded description written to {path}")
        return True
