"""Code generation through a chat-completions API, one request per desired file."""

from __future__ import annotations

import json
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Sequence, runtime_checkable

import requests

API_URL_BASE = "https://api.inceptionlabs.ai/v1"
CHAT_COMPLETIONS_ENDPOINT = API_URL_BASE + "/chat/completions"
MODEL_NAME = "mercury-coder-small"
SYSTEM_PROMPT = (
    "You are a helpful assistant that generates code. You will be given an overall "
    "instruction, a set of existing reference files, a list of all files to be "
    "generated with their descriptions, and the specific file you need to generate "
    "now. Your response MUST ONLY be the complete text content for the requested "
    "file. Do NOT include any other explanatory text, markdown formatting, or any "
    "preamble. Only the raw file content."
)

FILE_MODE = 0o644
DIR_MODE = 0o755


class CodegenError(Exception):
    """Raised when code generation or writing generated files fails."""


@runtime_checkable
class WriteableFileSystem(Protocol):
    """A file system that generated files can be written to."""

    def mkdir_all(self, path: str, perm: int) -> None:
        """Create a directory and all its parents."""

    def write_file(self, filename: str, data: bytes, perm: int) -> None:
        """Write data to a file, replacing it if it exists."""


@dataclass
class File:
    """A generated file, or an existing file given as context."""

    path: str
    contents: bytes = b""


@dataclass
class DesiredFile:
    """A file to generate, with a plain-language description of its contents."""

    path: str
    description: str = ""


@dataclass
class ChatMessage:
    """A single chat message with a role and content."""

    role: str
    content: str


@dataclass
class APIErrorDetail:
    """An error object returned by the API."""

    message: str = ""
    type: str = ""
    code: Any = None


@dataclass
class APIResponse:
    """A parsed chat-completions response: the choices' messages and any error."""

    choices: list[ChatMessage] = field(default_factory=list)
    error: Optional[APIErrorDetail] = None


def _fmt(value: Any) -> str:
    return "<nil>" if value is None else str(value)


def _describe(detail: APIErrorDetail) -> str:
    return f"{detail.message} (Type: {detail.type}, Code: {_fmt(detail.code)}"


def _parse_error_detail(data: Any) -> Optional[APIErrorDetail]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError("error is not an object")
    message = data.get("message") or ""
    kind = data.get("type") or ""
    if not isinstance(message, str) or not isinstance(kind, str):
        raise ValueError("error fields have the wrong type")
    return APIErrorDetail(message=message, type=kind, code=data.get("code"))


def _parse_response(data: Any) -> APIResponse:
    if not isinstance(data, dict):
        raise ValueError("response is not a JSON object")
    raw_choices = data.get("choices") or []
    if not isinstance(raw_choices, list):
        raise ValueError("choices is not a list")
    choices = []
    for choice in raw_choices:
        if not isinstance(choice, dict):
            raise ValueError("choice is not an object")
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise ValueError("choice message is not an object")
        role = message.get("role") or ""
        content = message.get("content") or ""
        if not isinstance(role, str) or not isinstance(content, str):
            raise ValueError("message fields have the wrong type")
        choices.append(ChatMessage(role=role, content=content))
    return APIResponse(choices=choices, error=_parse_error_detail(data.get("error")))


def build_user_message(
    instruction: str,
    existing_files: Sequence[File] | None,
    all_desired_files: Sequence[DesiredFile] | None,
    current_file: DesiredFile,
) -> str:
    """Build the user prompt asking for the content of one file."""
    parts = [f"Overall instruction:\n{instruction}\n\n"]
    if existing_files:
        parts.append("Existing files (for context):\n")
        parts.extend(
            f"--- {f.path} ---\n{f.contents.decode('utf-8', errors='replace')}\n"
            for f in existing_files
        )
        parts.append("\n")
    if all_desired_files:
        parts.append("Desired output files to be generated:\n")
        parts.extend(f"- {df.path}: {df.description}\n" for df in all_desired_files)
        parts.append("\n")
    parts.append(
        "Please generate the content for the following file:\n"
        f"Path: {current_file.path}\nDescription: {current_file.description}\n"
    )
    return "".join(parts)


def make_chat_completions_request(
    api_key: str,
    instruction: str,
    existing_files: Sequence[File] | None,
    all_desired_files: Sequence[DesiredFile] | None,
    current_file: DesiredFile,
    endpoint: str = CHAT_COMPLETIONS_ENDPOINT,
) -> APIResponse:
    """Ask the API for the content of one file and return the parsed response."""
    body = {
        "model": MODEL_NAME,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_user_message(
                    instruction, existing_files, all_desired_files, current_file
                ),
            },
        ],
    }
    headers = {
        "Authorization": "Bearer " + api_key,
        "Content-Type": "application/json",
    }
    try:
        resp = requests.post(endpoint, data=json.dumps(body), headers=headers)
    except requests.RequestException as exc:
        raise CodegenError(f"failed to send HTTP request: {exc}") from exc

    text = resp.content.decode("utf-8", errors="replace")

    if resp.status_code >= 400:
        try:
            detail = _parse_error_detail(json.loads(text).get("error"))
        except (ValueError, AttributeError):
            detail = None
        if detail is not None:
            raise CodegenError(
                f"API error: {_describe(detail)}, HTTP Status: {resp.status_code})"
            )
        raise CodegenError(f"API request failed with status {resp.status_code}: {text}")

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise CodegenError(
            f"failed to unmarshal API response: {exc}. Response body: {text}"
        ) from exc
    try:
        return _parse_response(data)
    except ValueError as exc:
        message = data.get("message") if isinstance(data, dict) else None
        if isinstance(message, str) and message:
            detail = APIErrorDetail(
                message=message,
                type=str(data.get("type") or ""),
                code=data.get("code"),
            )
            raise CodegenError(
                f"API returned an error structure: {_describe(detail)}). "
                f"Original unmarshal error: {exc}. Response body: {text}"
            ) from exc
        raise CodegenError(
            f"failed to unmarshal API response: {exc}. Response body: {text}"
        ) from exc


class Generator:
    """Generates files through the chat-completions API and writes them out."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key
        self.endpoint = CHAT_COMPLETIONS_ENDPOINT

    def write(self, files: Iterable[File]) -> None:
        """Write files to disk, overwriting any that exist."""
        for file in files:
            try:
                Path(file.path).write_bytes(file.contents)
            except OSError as exc:
                raise CodegenError(f"error writing file {file.path}: {exc}") from exc

    def write_to(
        self, files: Iterable[Optional[File]], dest_fs: WriteableFileSystem
    ) -> None:
        """Write files to dest_fs, creating their directories first."""
        for file in files:
            if file is None:
                continue
            directory = os.path.dirname(file.path)
            if directory and directory != ".":
                try:
                    dest_fs.mkdir_all(directory, DIR_MODE)
                except (OSError, ValueError) as exc:
                    raise CodegenError(
                        f"error creating directory {directory} in destFS: {exc}"
                    ) from exc
            try:
                dest_fs.write_file(file.path, file.contents, FILE_MODE)
            except (OSError, ValueError) as exc:
                raise CodegenError(
                    f"error writing file {file.path} to destFS: {exc}"
                ) from exc

    def generate_code(
        self,
        instruction: str,
        existing_files: Sequence[File] | None,
        desired_output_files: Sequence[DesiredFile] | None,
    ) -> list[File]:
        """Generate every desired file concurrently; results follow the input order."""
        desired = list(desired_output_files or [])
        if not desired:
            return []
        existing = list(existing_files or [])

        def generate(target: DesiredFile) -> File | CodegenError:
            try:
                return self._generate_single_file(instruction, existing, desired, target)
            except CodegenError as exc:
                return CodegenError(f"error generating file {target.path}: {exc}")

        with ThreadPoolExecutor(max_workers=len(desired)) as pool:
            results = list(pool.map(generate, desired))

        for result in results:
            if isinstance(result, CodegenError):
                raise result
        return results  # type: ignore[return-value]

    def _generate_single_file(
        self,
        instruction: str,
        existing_files: Sequence[File],
        all_desired_files: Sequence[DesiredFile],
        target: DesiredFile,
    ) -> File:
        try:
            response = make_chat_completions_request(
                self.api_key,
                instruction,
                existing_files,
                all_desired_files,
                target,
                self.endpoint,
            )
        except CodegenError as exc:
            raise CodegenError(f"API request failed for {target.path}: {exc}") from exc

        if not response.choices or not response.choices[0].content:
            if response.error is not None:
                raise CodegenError(
                    f"API returned an error for {target.path}: "
                    f"{_describe(response.error)})"
                )
            raise CodegenError(
                f"API response for {target.path} did not contain expected content. "
                f"Choices: {len(response.choices)}"
            )
        return File(path=target.path, contents=response.choices[0].content.encode("utf-8"))