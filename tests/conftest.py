import os

import pytest

from treemd import config as config_module
from treemd.parser import parse_markdown
from treemd.query import Engine
from treemd.query import saved as saved_module


SAMPLE_MARKDOWN = '''# Project

Intro paragraph with a [link](https://example.com) and [[Wiki Page]].

## Installation

Run this:

```bash
pip install treemd
```

### From source

```python
print("hi")
```

## Usage

See [install](#installation) and [guide](docs/guide.md#start).

1. First step
   ```rust
   fn main() {}
   ```
2. Second step

- [x] done task
- [ ] open task

| Name | Value |
|:-----|------:|
| a    | 1     |

![Logo](logo.png "The logo")

# Appendix

## Notes
'''


@pytest.fixture
def sample_markdown():
    """A document exercising every element kind."""
    return SAMPLE_MARKDOWN


@pytest.fixture
def sample_doc():
    return parse_markdown(SAMPLE_MARKDOWN)


@pytest.fixture
def engine(sample_doc):
    """Query engine over the sample document."""
    return Engine(sample_doc)


@pytest.fixture
def query(engine):
    """Shortcut: run a query string against the sample document."""
    return engine.execute


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "README.md"
    path.write_text(SAMPLE_MARKDOWN, encoding="utf-8")
    return path


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """
    Point configuration at an empty temp directory.

    Resets the global config and saved-query registry so each test
    starts from defaults.
    """
    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "work"
    workdir.mkdir()

    monkeypatch.setattr(config_module, "USER_CONFIG_PATH", home / "config.toml")
    monkeypatch.chdir(workdir)
    for key in list(os.environ):
        if key.startswith("TREEMD_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("TREEMD_QUERIES_FILE", str(home / "queries.yaml"))

    config_module._config = None
    saved_module.reset_saved_registry()
    yield home
    config_module._config = None
    saved_module.reset_saved_registry()
