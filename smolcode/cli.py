"""The smolcode command line: conversation history and code generation."""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime
from typing import NoReturn, Optional, Sequence

from smolcode import history
from smolcode.codegen import CodegenError, DesiredFile, File, Generator
from smolcode.tarfs import TarballWriterFS

_HISTORY_USAGE = "Usage: smolcode history <subcommand> [arguments]"
_MAIN_USAGE = (
    "Usage: smolcode <command> [arguments]\n"
    "Commands:\n"
    "  history   Manage stored conversations (new, append, list, show)\n"
    "  generate  Generate files from an instruction\n"
)


def _fatal(message: str) -> NoReturn:
    """Write a message to standard error and stop with exit status 1."""
    sys.stdout.flush()
    sys.stderr.write(message if message.endswith("\n") else message + "\n")
    sys.stderr.flush()
    raise SystemExit(1)


def _usage_error(parser: argparse.ArgumentParser, message: str) -> NoReturn:
    parser.print_usage(sys.stderr)
    _fatal(message)


def _rfc3339(moment: datetime) -> str:
    text = moment.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parser(prog: str, description: str) -> argparse.ArgumentParser:
    return argparse.ArgumentParser(prog=prog, description=description, allow_abbrev=False)


def parse_desired_spec(spec: str) -> DesiredFile:
    """Parse a 'filepath:description' specification into a DesiredFile."""
    path, sep, description = spec.partition(":")
    if not sep or not path or not description:
        raise ValueError(
            f"Invalid format for --desired flag: '{spec}'. "
            "Expected 'filepath:description'."
        )
    return DesiredFile(path=path.strip(), description=description.strip())


def _history_new(args: Sequence[str]) -> None:
    parser = _parser("smolcode history new", "Creates a new conversation.")
    parser.add_argument("rest", nargs="*", help=argparse.SUPPRESS)
    opts = parser.parse_args(args)
    if opts.rest:
        _usage_error(parser, "Error: 'new' does not take any arguments")

    conversation = history.new_conversation()
    try:
        history.save(conversation)
    except history.HistoryError as exc:
        _fatal(f"Error saving new conversation: {exc}")
    print(f"New conversation created with ID: {conversation.id}")


def _history_append(args: Sequence[str]) -> None:
    parser = _parser(
        "smolcode history append", "Appends a message to an existing conversation."
    )
    parser.add_argument("-id", "--id", dest="id", default="",
                        help="ID of the conversation to append to")
    parser.add_argument("-payload", "--payload", dest="payload", default="",
                        help="Payload of the message to append")
    parser.add_argument("rest", nargs="*", help=argparse.SUPPRESS)
    opts = parser.parse_args(args)

    if not opts.id:
        _usage_error(parser, "Error: --id flag is required for 'append'")
    if not opts.payload:
        _usage_error(parser, "Error: --payload flag is required for 'append'")
    if opts.rest:
        _usage_error(parser, "Error: 'append' does not take positional arguments")

    try:
        conversation = history.load(opts.id)
    except history.HistoryError as exc:
        _fatal(f"Error loading conversation '{opts.id}': {exc}")
    conversation.append(opts.payload)
    try:
        history.save(conversation)
    except history.HistoryError as exc:
        _fatal(f"Error saving updated conversation '{opts.id}': {exc}")
    print(f"Message appended to conversation {opts.id} successfully.")


def _history_list(args: Sequence[str]) -> None:
    parser = _parser("smolcode history list", "Lists all conversations.")
    parser.add_argument("rest", nargs="*", help=argparse.SUPPRESS)
    opts = parser.parse_args(args)
    if opts.rest:
        _usage_error(parser, "Error: 'list' does not take any arguments")

    try:
        conversations = history.list_conversations(history.DEFAULT_DATABASE_PATH)
    except history.HistoryError as exc:
        _fatal(f"Error listing conversations: {exc}")

    if not conversations:
        print("No conversations found.")
        return
    print("Conversations:")
    for meta in conversations:
        print(
            f"  ID: {meta.id}, Created: {_rfc3339(meta.created_at)}, "
            f"Last Message: {_rfc3339(meta.latest_message_time)}, "
            f"Messages: {meta.message_count}"
        )


def _format_payload(payload: object) -> str:
    try:
        text = json.dumps(payload, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(payload)
    return text.replace("\n", "\n      ")


def _history_show(args: Sequence[str]) -> None:
    parser = _parser(
        "smolcode history show", "Shows the details of a specific conversation."
    )
    parser.add_argument("-id", "--id", dest="id", default="",
                        help="ID of the conversation to show")
    parser.add_argument("rest", nargs="*", help=argparse.SUPPRESS)
    opts = parser.parse_args(args)

    if not opts.id:
        _usage_error(parser, "Error: --id flag is required for 'show'")
    if opts.rest:
        _usage_error(parser, "Error: 'show' does not take positional arguments")

    try:
        conversation = history.load(opts.id)
    except history.HistoryError as exc:
        _fatal(f"Error loading conversation '{opts.id}': {exc}")

    print(f"Conversation ID: {conversation.id}")
    print(f"Created At: {_rfc3339(conversation.created_at)}")
    print(f"Messages ({len(conversation.messages)}):")
    for index, message in enumerate(conversation.messages):
        print(f"  [{index}] Created At: {_rfc3339(message.created_at)}")
        print(f"      Payload: {_format_payload(message.payload)}")


_HISTORY_COMMANDS = {
    "new": _history_new,
    "append": _history_append,
    "list": _history_list,
    "show": _history_show,
}


def run_history(args: Sequence[str]) -> None:
    """Run a 'history' subcommand: new, append, list or show."""
    if not args:
        print(_HISTORY_USAGE)
        _fatal("Error: No history subcommand provided.")
    subcommand, rest = args[0], list(args[1:])
    handler = _HISTORY_COMMANDS.get(subcommand)
    if handler is None:
        sys.stderr.write(_HISTORY_USAGE + "\n")
        _fatal(f"Error: Unknown history subcommand '{subcommand}'")
    handler(rest)


def _generate_parser() -> argparse.ArgumentParser:
    parser = _parser(
        "smolcode generate",
        "Generates code based on an instruction using Inception Labs API.",
    )
    parser.add_argument(
        "-archive", "--archive", action="store_true",
        help="Output a tar archive to stdout instead of writing files to disk.",
    )
    parser.add_argument(
        "-existing-file", "--existing-file", "-f", dest="existing", action="append",
        default=[],
        help="Path to an existing file to provide as context (can be repeated).",
    )
    parser.add_argument(
        "-desired", "--desired", dest="desired", action="append", default=[],
        help="Desired file to generate, format 'filepath:description' (can be repeated).",
    )
    parser.add_argument("instruction", nargs="*", help="The instruction to follow.")
    parser.epilog = (
        'Example for --desired: --desired "pkg/utils/helpers.go:A utility package '
        'for common helper functions, including string manipulation and error handling."'
    )
    return parser


def run_generate(args: Sequence[str]) -> None:
    """Run the 'generate' command: produce files from an instruction."""
    parser = _generate_parser()
    opts = parser.parse_args(args)
    if not opts.instruction:
        parser.print_help(sys.stderr)
        _fatal("Error: Instruction argument is required for 'generate' command.")
    instruction = " ".join(opts.instruction)

    generator = Generator(os.environ.get("INCEPTION_API_KEY", ""))

    existing_files = []
    for path in opts.existing:
        try:
            with open(path, "rb") as handle:
                contents = handle.read()
        except OSError as exc:
            _fatal(f"Error reading existing file {path}: {exc}")
        existing_files.append(File(path=path, contents=contents))
        sys.stderr.write(f"Providing existing file as context: {path}\n")

    desired_files = []
    for spec in opts.desired:
        try:
            desired = parse_desired_spec(spec)
        except ValueError as exc:
            _fatal(str(exc))
        desired_files.append(desired)
        sys.stderr.write(
            f"Requesting desired file: {desired.path} "
            f"(Description: {desired.description})\n"
        )

    sys.stderr.write(f"Generating code with instruction: {instruction}...\n")
    try:
        generated = generator.generate_code(instruction, existing_files, desired_files)
    except CodegenError as exc:
        _fatal(f"Error generating code: {exc}")
    sys.stderr.write(
        f"Code generation complete. Received {len(generated)} file(s).\n"
    )

    if opts.archive:
        sys.stderr.write("Outputting to tar archive on stdout...\n")
        sys.stdout.flush()
        target = sys.stdout.buffer
        tar_fs = TarballWriterFS(target)
        try:
            generator.write_to(generated, tar_fs)
        except CodegenError as exc:
            _fatal(f"Error writing to tar archive: {exc}")
        finally:
            try:
                tar_fs.close()
            except OSError as exc:
                sys.stderr.write(f"Error closing tar archive: {exc}\n")
            target.flush()
        sys.stderr.write("Tar archive written to stdout successfully.\n")
        return

    sys.stderr.write("Writing files to disk...\n")
    try:
        generator.write(generated)
    except CodegenError as exc:
        _fatal(f"Error writing files to disk: {exc}")
    sys.stderr.write("Files written to disk successfully:\n")
    for file in generated:
        sys.stderr.write(f"  - {file.path}\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Dispatch to a command and return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        sys.stderr.write(_MAIN_USAGE)
        return 2
    command, rest = args[0], args[1:]
    if command == "history":
        run_history(rest)
    elif command == "generate":
        run_generate(rest)
    else:
        sys.stderr.write(f"Error: Unknown command '{command}'\n" + _MAIN_USAGE)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())