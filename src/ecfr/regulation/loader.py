import logging
import re
from datetime import date
from pathlib import Path
from typing import List, Optional

from ecfr.core.loader import TitleSource
from ecfr.settings import LOCAL_DATA_DIR

logger = logging.getLogger(__name__)

TITLE_FILENAME_PATTERN = re.compile(r"^title-(\d+)\.xml$")


class EcfrLoader(TitleSource):
    """Loader for title documents downloaded ahead of time as title-{n}.xml files."""

    def __init__(self, input_path: str = LOCAL_DATA_DIR):
        self.input_path = Path(input_path)

    def path_for(self, title_number: int) -> Path:
        return self.input_path / f"title-{title_number}.xml"

    def available_titles(self) -> List[int]:
        """Title numbers with a file in the input directory, ascending."""
        if not self.input_path.exists():
            return []

        numbers = []
        for file in self.input_path.glob("title-*.xml"):
            match = TITLE_FILENAME_PATTERN.match(file.name)
            if match:
                numbers.append(int(match.group(1)))
        return sorted(numbers)

    def load_title_xml(self, title_number: int, effective_date: Optional[date] = None) -> bytes:
        """Read a title's file. Local files hold a single revision, so the date is ignored.

        Raises:
            FileNotFoundError: If there is no file for the title
        """
        path = self.path_for(title_number)
        logger.debug(f"Reading Title {title_number} from {path}")
        return path.read_bytes()
