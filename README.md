# smolcode

Tools for a terminal coding assistant:

- **Conversation history** that is kept in a SQLite database (by default `.smolcode/history.db`).
- **Code generation**: you give an instruction and describe the files you want. Each file is generated through a chat-completions API, and all files are requested at the same time.
- **Terminal display** helpers that print role-tagged, coloured messages. When the message can be rendered as Markdown, it is.
- A **tool-schema normaliser** that adjusts JSON Schema documents so that function-calling APIs accept them.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Command line

### Conversation history

```
smolcode history new
smolcode history append --id <conversation-id> --payload "some text"
smolcode history list
smolcode history show --id <conversation-id>
```

### Generating code

```
export INCEPTION_API_KEY=placeholder
smolcode generate \
  --desired "pkg/helpers.py:Utility functions for string handling" \
  -f existing_module.py \
  "Add helpers used by existing_module"
```

Each `--desired` option takes the form `path:description`, and you can give it more than once. Files passed with `--existing-file`/`-f` are sent to the API as context. With `--archive`, a tar archive is written to stdout and nothing is written to disk:

```
smolcode generate --archive --desired "a.py:A module" "Write a module" > out.tar
```

## Library use

```python
from smolcode import history

conv = history.new_conversation()
conv.append({"role": "user", "text": "hello"})
history.save_to(conv, "/tmp/history.db")

loaded = history.load_from(conv.id, "/tmp/history.db")
latest = history.get_latest_conversation_id("/tmp/history.db")
for meta in history.list_conversations("/tmp/history.db"):
    print(meta.id, meta.message_count)
```

```python
from smolcode.codegen import Generator, DesiredFile

gen = Generator(api_key="placeholder")
files = gen.generate_code(
    "Create a greeting module",
    [],
    [DesiredFile(path="greet.py", description="A greet(name) function")],
)
gen.write(files)
```

`Generator.write_to` writes the files into any object that has `mkdir_all` and `write_file` methods. `smolcode.tarfs.TarballWriterFS` is one such object, and writes the files into a tar stream.