import logging
import time
from typing import List, Optional, Sequence, Tuple

import httpx

from cvscan.config import IntakeSettings
from cvscan.models import CapturedPage, DeviceProfile, ErrorKind, IntakeResult, PageSource
from cvscan.pipeline.exceptions import EmptyBufferError, IntakeResponseError
from cvscan.pipeline.response import parse_intake_payload


TIMEOUT_STATUSES = frozenset({408, 504})


def part_name(index: int) -> str:
    return f"page_{index}"


def part_filename(page: CapturedPage, index: int) -> str:
    if page.source is PageSource.CAMERA or not page.filename:
        return f"cv_page_{index}.jpg"
    return page.filename


class SubmissionOrchestrator:
    """
    Sends the ordered page set to the CV analysis endpoint.

    Every outcome except an empty page list comes back as an IntakeResult;
    nothing is retried here, retry is the user's call.
    """

    def __init__(
        self,
        profile: DeviceProfile,
        settings: Optional[IntakeSettings] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.profile = profile
        self.settings = settings or IntakeSettings()
        self._owns_client = client is None
        self.client = client or httpx.Client()
        self.log = logging.getLogger("SubmissionOrchestrator")

    @property
    def timeout_budget(self) -> float:
        """Seconds to wait before offering a retry; longer on low-power devices."""
        if self.profile.is_low_power_device:
            return self.settings.low_power_timeout_seconds
        return self.settings.timeout_seconds

    def build_parts(self, pages: Sequence[CapturedPage]) -> List[Tuple[str, Tuple[str, bytes, str]]]:
        """Multipart parts in document order. Raises ValueError/OSError on unreadable pages."""
        return [
            (part_name(i), (part_filename(page, i), page.image.read(), page.mime_type))
            for i, page in enumerate(pages)
        ]

    def submit(self, pages: Sequence[CapturedPage]) -> IntakeResult:
        if not pages:
            raise EmptyBufferError("At least one page is required before submitting")

        try:
            parts = self.build_parts(pages)
        except (OSError, ValueError) as e:
            self.log.error(f"Could not read page data: {e}")
            return IntakeResult.failed(ErrorKind.PAGE_UNREADABLE, f"A page could not be read: {e}")

        headers = {}
        if self.settings.auth_token:
            headers["Authorization"] = f"Bearer {self.settings.auth_token}"

        budget = self.timeout_budget
        self.log.info(f"Submitting {len(parts)} page(s) to {self.settings.endpoint_url} (budget {budget:.0f}s)")

        deadline = time.monotonic() + budget
        try:
            with self.client.stream(
                "POST",
                self.settings.endpoint_url,
                files=parts,
                headers=headers,
                timeout=httpx.Timeout(budget),
            ) as streamed:
                response = self._read_before(streamed, deadline)
        except httpx.TimeoutException as e:
            self.log.warning(f"Submission timed out after {budget:.0f}s: {e}")
            return IntakeResult.failed(ErrorKind.TIMEOUT, "Processing is taking too long. Please try again.")
        except httpx.HTTPError as e:
            self.log.warning(f"Submission network error: {e}")
            return IntakeResult.failed(ErrorKind.NETWORK, f"Network error: {e}")

        return self._interpret(response)

    @staticmethod
    def _read_before(streamed: httpx.Response, deadline: float) -> httpx.Response:
        """Read the whole body, raising ReadTimeout once ``deadline`` passes.

        Per-operation httpx timeouts never fire on a backend that keeps
        trickling bytes, so the total is checked between chunks.
        """
        chunks = []
        if time.monotonic() > deadline:
            raise httpx.ReadTimeout("Response started after the deadline", request=streamed.request)
        for chunk in streamed.iter_bytes():
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise httpx.ReadTimeout("Response not complete before the deadline", request=streamed.request)

        headers = {}
        if "content-type" in streamed.headers:
            headers["content-type"] = streamed.headers["content-type"]
        # Decoded body, so content-encoding is not carried over
        return httpx.Response(
            streamed.status_code,
            headers=headers,
            content=b"".join(chunks),
            request=streamed.request,
        )

    def _interpret(self, response: httpx.Response) -> IntakeResult:
        if response.status_code in TIMEOUT_STATUSES:
            self.log.warning(f"Backend reported timeout ({response.status_code})")
            return IntakeResult.failed(ErrorKind.TIMEOUT, f"Backend timed out ({response.status_code})")

        if response.is_error:
            message = self._error_message(response)
            self.log.warning(f"Backend rejected submission ({response.status_code}): {message}")
            return IntakeResult.failed(ErrorKind.SERVER_REJECTED, message)

        try:
            body = response.json()
        except ValueError:
            self.log.error("Backend returned a non-JSON body")
            return IntakeResult.failed(ErrorKind.SERVER_REJECTED, "Backend returned an unreadable response")

        try:
            cv = parse_intake_payload(body)
        except IntakeResponseError as e:
            self.log.error(f"Backend response rejected: {e}")
            return IntakeResult.failed(ErrorKind.SERVER_REJECTED, str(e))

        self.log.info(f"CV extracted (confidence {cv.confidence_score:.2f}, {len(cv.skills)} skills)")
        return IntakeResult.success(cv)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if message:
                return str(message)
        return f"Backend returned HTTP {response.status_code}"

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
