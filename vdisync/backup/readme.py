"""Reconstitution instructions shipped next to the chunks"""

from pathlib import Path
import logging

from ..config import README_FILENAME

logger = logging.getLogger(__name__)

README_TEMPLATE = """\
==========================================================================
DISK IMAGE ARCHIVE RECONSTITUTION INSTRUCTIONS
==========================================================================
These files are fixed-size chunks of the original disk image files
({source_glob}). Every chunk except the last one is exactly
{chunk_size} bytes long.

To restore an original disk image:

1. Ensure all the numbered parts (e.g., 'MyVM.vdi.part.{zero}')
   are present in the same directory on your local machine.

2. Concatenate the parts in index order:
   $ cat MyVM.vdi.part.* > MyVM.vdi
   or
   $ vdisync restore --dir . --name MyVM.vdi

3. This will reassemble the single, original 'MyVM.vdi' file.

4. You can then attach the reconstituted disk image to your VM.
==========================================================================
"""


def render_readme(source_glob: str, chunk_size: int, suffix_length: int) -> str:
    return README_TEMPLATE.format(
        source_glob=source_glob,
        chunk_size=chunk_size,
        zero='0' * suffix_length
    )


def write_readme(directory: Path, content: str) -> Path:
    path = Path(directory) / README_FILENAME
    path.write_text(content)
    logger.debug(f"Wrote {path}")
    return path


def remove_readme(directory: Path):
    path = Path(directory) / README_FILENAME
    if path.exists():
        path.unlink()
