import io
import json
import tarfile

import pytest
import responses

from smolcode import history
from smolcode.cli import main, parse_desired_spec, run_generate, run_history
from smolcode.codegen import CHAT_COMPLETIONS_ENDPOINT


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("INCEPTION_API_KEY", "placeholder")
    return tmp_path


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_parse_desired_spec_valid():
    spec = (
        "pkg/utils/helpers.go:A utility package for common helper functions, "
        "including string manipulation and error handling."
    )
    desired = parse_desired_spec(spec)
    assert desired.path == "pkg/utils/helpers.go"
    assert desired.description == spec.split(":", 1)[1]


def test_parse_desired_spec_trims_and_keeps_later_colons():
    desired = parse_desired_spec(" a.go : desc: more ")
    assert desired.path == "a.go"
    assert desired.description == "desc: more"


@pytest.mark.parametrize("spec", ["nocolon", ":desc", "path:"])
def test_parse_desired_spec_invalid(spec):
    with pytest.raises(ValueError, match="Invalid format for --desired flag"):
        parse_desired_spec(spec)


def test_history_new_then_list(workdir, capsys):
    assert main(["history", "new"]) == 0
    out = capsys.readouterr().out
    prefix = "New conversation created with ID: "
    assert out.startswith(prefix)
    conv_id = out[len(prefix):].strip()
    assert history.load(conv_id).messages == []

    run_history(["list"])
    listing = capsys.readouterr().out
    assert listing.startswith("Conversations:\n")
    assert f"ID: {conv_id}," in listing
    assert "Messages: 0" in listing


def test_history_append_and_show(workdir, capsys):
    conversation = history.new_conversation()
    history.save(conversation)

    run_history(["append", "--id", conversation.id, "--payload", "hello"])
    out = capsys.readouterr().out
    assert out == f"Message appended to conversation {conversation.id} successfully.\n"
    loaded = history.load(conversation.id)
    assert [m.payload for m in loaded.messages] == ["hello"]

    run_history(["show", "-id", conversation.id])
    shown = capsys.readouterr().out
    assert f"Conversation ID: {conversation.id}\n" in shown
    assert "Messages (1):\n" in shown
    assert '      Payload: "hello"\n' in shown


def test_history_show_indents_structured_payload(workdir, capsys):
    conversation = history.new_conversation()
    conversation.append({"a": 1})
    history.save(conversation)

    run_history(["show", "--id", conversation.id])
    shown = capsys.readouterr().out
    assert '      Payload: {\n        "a": 1\n      }\n' in shown


def test_history_list_empty_database(workdir, capsys):
    with pytest.raises(history.ConversationNotFoundError):
        history.get_latest_conversation_id(history.DEFAULT_DATABASE_PATH)
    run_history(["list"])
    assert capsys.readouterr().out == "No conversations found.\n"


def test_history_list_without_database_fails(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_history(["list"])
    assert info.value.code == 1
    assert "Error listing conversations" in capsys.readouterr().err


def test_history_without_subcommand(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        main(["history"])
    assert info.value.code == 1
    captured = capsys.readouterr()
    assert "Usage: smolcode history <subcommand> [arguments]" in captured.out
    assert "Error: No history subcommand provided." in captured.err


def test_history_unknown_subcommand(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_history(["bogus"])
    assert info.value.code == 1
    assert "Error: Unknown history subcommand 'bogus'" in capsys.readouterr().err


def test_history_append_requires_id(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_history(["append", "--payload", "x"])
    assert info.value.code == 1
    assert "Error: --id flag is required for 'append'" in capsys.readouterr().err


def test_history_new_rejects_arguments(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_history(["new", "extra"])
    assert info.value.code == 1
    assert "Error: 'new' does not take any arguments" in capsys.readouterr().err


def test_history_append_unknown_conversation(workdir, capsys):
    history.save(history.new_conversation())
    with pytest.raises(SystemExit) as info:
        run_history(["append", "--id", "missing", "--payload", "x"])
    assert info.value.code == 1
    assert "Error loading conversation 'missing'" in capsys.readouterr().err


def test_generate_requires_instruction(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_generate([])
    assert info.value.code == 1
    assert (
        "Error: Instruction argument is required for 'generate' command."
        in capsys.readouterr().err
    )


def test_generate_rejects_bad_desired_spec(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_generate(["--desired", "nocolon", "do it"])
    assert info.value.code == 1
    assert "Invalid format for --desired flag: 'nocolon'" in capsys.readouterr().err


def test_generate_missing_existing_file(workdir, capsys):
    with pytest.raises(SystemExit) as info:
        run_generate(["-f", "absent.txt", "--desired", "x.txt:a file", "do it"])
    assert info.value.code == 1
    assert "Error reading existing file absent.txt" in capsys.readouterr().err


def test_generate_writes_files_to_disk(workdir, capsys):
    (workdir / "main.go").write_text("package main\nfunc main() {}")
    content = "package main\n\nfunc newFuncGenerated() {}"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, CHAT_COMPLETIONS_ENDPOINT, json=_completion(content))
        assert main([
            "generate", "-f", "main.go",
            "--desired", "new_func.go:A new Go function",
            "Create", "a", "new", "Go", "function.",
        ]) == 0
        body = json.loads(rsps.calls[0].request.body)
        assert rsps.calls[0].request.headers["Authorization"] == "Bearer placeholder"

    user_message = body["messages"][1]["content"]
    assert "Overall instruction:\nCreate a new Go function." in user_message
    assert "--- main.go ---\npackage main\nfunc main() {}\n" in user_message
    assert (workdir / "new_func.go").read_text() == content
    err = capsys.readouterr().err
    assert "Code generation complete. Received 1 file(s)." in err
    assert "  - new_func.go" in err


def test_generate_archive_to_stdout(workdir, capsysbinary):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, CHAT_COMPLETIONS_ENDPOINT, json=_completion("nested"))
        run_generate(["--archive", "--desired", "dira/file.txt:a file", "make it"])

    out = capsysbinary.readouterr().out
    with tarfile.open(fileobj=io.BytesIO(out)) as archive:
        names = archive.getnames()
        data = archive.extractfile("dira/file.txt").read()
    assert names == ["dira", "dira/file.txt"]
    assert data == b"nested"
    assert not (workdir / "dira").exists()


def test_generate_api_error(workdir, capsys):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            CHAT_COMPLETIONS_ENDPOINT,
            json={"error": {"message": "Incorrect API key", "type": "auth_error",
                            "code": "invalid_api_key"}},
            status=401,
        )
        with pytest.raises(SystemExit) as info:
            run_generate(["--desired", "x.txt:a file", "make it"])
    assert info.value.code == 1
    err = capsys.readouterr().err
    assert "Error generating code" in err
    assert (
        "API error: Incorrect API key (Type: auth_error, Code: invalid_api_key, "
        "HTTP Status: 401)" in err
    )


def test_main_unknown_command(capsys):
    assert main(["frobnicate"]) == 2
    assert "Unknown command 'frobnicate'" in capsys.readouterr().err


def test_main_without_arguments(capsys):
    assert main([]) == 2
    assert "Usage: smolcode <command> [arguments]" in capsys.readouterr().err