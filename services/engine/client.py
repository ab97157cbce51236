"""HTTP client for the ComfyUI-compatible media engine."""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional
import requests
from requests.exceptions import RequestException, Timeout, ConnectionError, ChunkedEncodingError
from shared.constants import RETRYABLE_HTTP_STATUS_CODES
from shared.exceptions import (
    EngineError,
    EngineSubmissionError,
    EngineUnavailableError,
    OutputRetrievalError,
    TaskError,
)
from shared.settings import EngineSettings
from shared.types import OutputFile, QueueStatus, UploadResult


def extract_output_files(history_entry: Dict[str, Any], output_keys: Iterable[str]) -> List[OutputFile]:
    """Collects file descriptors under output_keys from every node in a history entry"""
    files: List[OutputFile] = []
    outputs = history_entry.get("outputs") if isinstance(history_entry, dict) else None
    if not isinstance(outputs, dict):
        return files

    for node_id, node_output in outputs.items():
        if not isinstance(node_output, dict):
            continue
        for key in output_keys:
            for item in node_output.get(key) or []:
                if isinstance(item, dict) and item.get("filename"):
                    files.append(OutputFile(
                        filename=item["filename"],
                        subfolder=item.get("subfolder") or "",
                        type=item.get("type") or "output",
                        node_id=str(node_id),
                    ))
    return files


def history_error(history_entry: Dict[str, Any]) -> Optional[str]:
    """Returns the engine's execution error message, if the entry reports one"""
    status = history_entry.get("status") if isinstance(history_entry, dict) else None
    if not isinstance(status, dict) or status.get("status_str") != "error":
        return None

    for message in status.get("messages") or []:
        if isinstance(message, (list, tuple)) and len(message) == 2 and message[0] == "execution_error":
            data = message[1] if isinstance(message[1], dict) else {}
            node_type = data.get("node_type") or "unknown node"
            detail = data.get("exception_message") or "execution error"
            return f"Engine execution failed in {node_type}: {str(detail).strip()}"
    return "Engine reported an execution error"


class ComfyUIClient:
    """Submit, poll, retrieve, upload, and cancel against the engine's HTTP API"""

    def __init__(self, settings: Optional[EngineSettings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or EngineSettings.from_env()
        self.session = session or requests.Session()
        self.client_id = self.settings.client_id or str(uuid.uuid4())

    def _url(self, path: str) -> str:
        return f"{self.settings.api_root}{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = self._url(path)
        kwargs.setdefault("timeout", self.settings.timeout_seconds)

        try:
            response = self.session.request(method, url, **kwargs)
        except (Timeout, ConnectionError, ChunkedEncodingError) as e:
            # Network errors are retryable
            error = TaskError(
                error_type="NETWORK_ERROR",
                error_message=f"Network error: {str(e)}",
                is_retryable=True,
                context={"url": url, "error_class": type(e).__name__}
            )
            raise EngineUnavailableError(error.error_message, error=error)
        except RequestException as e:
            error = TaskError(
                error_type="REQUEST_ERROR",
                error_message=f"Request failed: {str(e)}",
                is_retryable=False,
                context={"url": url}
            )
            raise EngineError(error.error_message, error=error)

        if response.status_code in RETRYABLE_HTTP_STATUS_CODES:
            retry_after = None
            if response.status_code == 429:
                retry_after_header = response.headers.get("Retry-After")
                if retry_after_header and retry_after_header.isdigit():
                    retry_after = int(retry_after_header)

            error = TaskError(
                error_type="HTTP_ERROR",
                error_message=f"HTTP {response.status_code}: {response.reason}",
                http_status_code=response.status_code,
                is_retryable=True,
                retry_after_seconds=retry_after,
                context={"url": url, "method": method}
            )
            raise EngineUnavailableError(error.error_message, error=error)

        return response

    def _json(self, response: requests.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError:
            error = TaskError(
                error_type="MALFORMED_RESPONSE",
                error_message=f"Engine returned a non-JSON response for {path}",
                http_status_code=response.status_code,
                context={"path": path}
            )
            raise EngineError(error.error_message, error=error)

    def _raise_for_status(self, response: requests.Response, path: str) -> None:
        if response.ok:
            return
        error = TaskError(
            error_type="HTTP_ERROR",
            error_message=f"HTTP {response.status_code}: {response.reason}",
            http_status_code=response.status_code,
            context={"path": path}
        )
        raise EngineError(error.error_message, error=error)

    def submit_workflow(self, wire: Dict[str, Any], client_id: Optional[str] = None) -> str:
        """Queues a wire-format graph; returns the engine's prompt id"""
        payload = {"prompt": wire, "client_id": client_id or self.client_id}
        response = self._request("POST", "/prompt", json=payload)
        body = self._json(response, "/prompt")
        if not isinstance(body, dict):
            body = {}

        if not response.ok or body.get("error") or body.get("node_errors"):
            message = describe_submission_error(body, response.status_code)
            error = TaskError(
                error_type="SUBMISSION_ERROR",
                error_message=message,
                http_status_code=response.status_code,
                context={
                    "error": body.get("error"),
                    "node_errors": body.get("node_errors") or {},
                }
            )
            logging.warning(
                "Engine rejected workflow",
                extra={"status_code": response.status_code, "error_message": message}
            )
            raise EngineSubmissionError(message, error=error)

        prompt_id = body.get("prompt_id")
        if not prompt_id:
            raise EngineSubmissionError("Engine response did not include a prompt_id")

        logging.info(
            "Workflow submitted",
            extra={"prompt_id": prompt_id, "number": body.get("number"), "node_count": len(wire)}
        )
        return str(prompt_id)

    def get_queue_status(self) -> QueueStatus:
        response = self._request("GET", "/queue")
        self._raise_for_status(response, "/queue")
        body = self._json(response, "/queue")
        if not isinstance(body, dict):
            body = {}

        return QueueStatus(
            running=_prompt_ids(body.get("queue_running")),
            pending=_prompt_ids(body.get("queue_pending")),
        )

    def get_history(self, prompt_id: str) -> Optional[Dict[str, Any]]:
        """History entry for prompt_id, or None while the engine has not recorded one"""
        path = f"/history/{prompt_id}"
        response = self._request("GET", path)
        if response.status_code == 404:
            return None
        self._raise_for_status(response, path)

        try:
            body = response.json()
        except ValueError:
            logging.warning("Malformed history response", extra={"prompt_id": prompt_id})
            return None

        entry = body.get(prompt_id) if isinstance(body, dict) else None
        if entry is not None and not isinstance(entry, dict):
            logging.warning("Malformed history entry", extra={"prompt_id": prompt_id})
            return None
        return entry

    def get_output_files(self, prompt_id: str, output_keys: Iterable[str]) -> List[OutputFile]:
        entry = self.get_history(prompt_id)
        if entry is None:
            return []
        return extract_output_files(entry, output_keys)

    def download_output(self, output_file: OutputFile) -> bytes:
        params = {
            "filename": output_file.filename,
            "subfolder": output_file.subfolder,
            "type": output_file.type,
        }
        response = self._request("GET", "/view", params=params)
        if not response.ok or not response.content:
            error = TaskError(
                error_type="OUTPUT_RETRIEVAL_ERROR",
                error_message=f"Could not download {output_file.filename} (HTTP {response.status_code})",
                http_status_code=response.status_code,
                is_retryable=True,
                context=params
            )
            raise OutputRetrievalError(error.error_message, error=error)
        return response.content

    def upload_file(
        self,
        data: bytes,
        filename: str,
        subfolder: str = "",
        overwrite: bool = True,
        file_type: str = "input",
    ) -> UploadResult:
        """Stages a local input file on the engine; returns the stored name"""
        response = self._request(
            "POST",
            "/upload/image",
            files={"image": (filename, data)},
            data={"subfolder": subfolder, "type": file_type, "overwrite": str(overwrite).lower()},
        )
        self._raise_for_status(response, "/upload/image")
        body = self._json(response, "/upload/image")
        if not isinstance(body, dict) or not body.get("name"):
            raise EngineError(f"Upload of {filename} returned no stored name")

        result = UploadResult(
            name=body["name"],
            subfolder=body.get("subfolder") or "",
            type=body.get("type") or file_type,
        )
        logging.info("Uploaded input file", extra={"upload_name": filename, "stored_name": result.name})
        return result

    def cancel_job(self, prompt_id: str) -> bool:
        """Removes the prompt from the pending queue and interrupts it if running"""
        try:
            deleted = self._request("POST", "/queue", json={"delete": [prompt_id]})
            interrupted = self._request("POST", "/interrupt", json={"prompt_id": prompt_id})
        except EngineError as e:
            logging.warning(
                "Engine cancel request failed",
                extra={"prompt_id": prompt_id, "error": e.message}
            )
            return False
        return deleted.ok and interrupted.ok

    def is_available(self) -> bool:
        try:
            response = self._request("GET", "/system_stats")
        except EngineError:
            return False
        return response.ok

    def get_available_models(self, node_type: str = "CheckpointLoaderSimple", input_name: str = "ckpt_name") -> List[str]:
        path = f"/object_info/{node_type}"
        response = self._request("GET", path)
        self._raise_for_status(response, path)
        body = self._json(response, path)

        try:
            spec = body[node_type]["input"]["required"][input_name]
        except (KeyError, TypeError):
            return []

        options = spec[0] if isinstance(spec, list) and spec else None
        # Newer engines declare combos as ["COMBO", {"options": [...]}]
        if options == "COMBO" and len(spec) > 1 and isinstance(spec[1], dict):
            options = spec[1].get("options")
        return [str(option) for option in options] if isinstance(options, list) else []


def _prompt_ids(entries: Any) -> List[str]:
    ids: List[str] = []
    for entry in entries or []:
        # Queue entries are [number, prompt_id, prompt, extra_data, outputs_to_execute]
        if isinstance(entry, (list, tuple)) and len(entry) > 1 and entry[1]:
            ids.append(str(entry[1]))
    return ids


def describe_submission_error(body: Dict[str, Any], status_code: int) -> str:
    """Human-readable summary of an engine rejection, node errors included"""
    parts: List[str] = []
    error = body.get("error")
    if isinstance(error, dict):
        parts.append(error.get("message") or error.get("type") or "Engine rejected the workflow")
        if error.get("details"):
            parts.append(str(error["details"]))
    elif error:
        parts.append(str(error))

    node_errors = body.get("node_errors")
    if isinstance(node_errors, dict):
        for node_id, node_error in node_errors.items():
            if not isinstance(node_error, dict):
                continue
            class_type = node_error.get("class_type", "node")
            for item in node_error.get("errors") or []:
                if isinstance(item, dict):
                    detail = item.get("details") or item.get("message") or ""
                    parts.append(f"{class_type} (node {node_id}): {detail}".rstrip(": "))

    if not parts:
        parts.append(f"Engine rejected the workflow (HTTP {status_code})")
    return "; ".join(parts)
