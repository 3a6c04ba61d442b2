import logging
from typing import List, Optional, Protocol

from .models import Analysis, AnalysisRequest, ScanRecord
from .parser import parse_analysis_text
from .prompts import build_prompt
from .validator import DEFAULT_SUMMARY_MAX_CHARS, normalize_analysis

logger = logging.getLogger(__name__)


class VisionClient(Protocol):
    def analyze(self, image_bytes: bytes, prompt: str) -> str:
        ...


class ScanStore(Protocol):
    def insert(
        self, user_id: str, analysis: Analysis, image_url: Optional[str] = None
    ) -> ScanRecord:
        ...

    def get(self, scan_id: str) -> Optional[ScanRecord]:
        ...

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[ScanRecord]:
        ...


class CoverAnalysisPipeline:
    """
    image -> prompt -> provider -> parse -> validate -> store

    Each stage raises a ScanError subclass on failure and the error is passed
    straight to the caller. The store is only touched after validation, so a
    failed or abandoned run never leaves a partial record.
    """

    def __init__(
        self,
        client: VisionClient,
        store: ScanStore,
        summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    ):
        self.client = client
        self.store = store
        self.summary_max_chars = summary_max_chars

    def run_analysis(self, request: AnalysisRequest) -> Analysis:
        prompt = build_prompt(request.preferred_genre, request.grade_level)
        text = self.client.analyze(request.image_bytes, prompt)
        data = parse_analysis_text(text)
        return normalize_analysis(data, self.summary_max_chars)

    def analyze(
        self,
        request: AnalysisRequest,
        user_id: str,
        image_url: Optional[str] = None,
    ) -> ScanRecord:

        analysis = self.run_analysis(request)
        record = self.store.insert(user_id, analysis, image_url=image_url)

        logger.info("scan %s saved for %s: %s", record.id, user_id, analysis.title)
        return record
