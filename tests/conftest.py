"""Shared fixtures for the Metalsmith plugin validation test suite.

The validator modules live in scripts/ and import each other as top-level
modules, so scripts/ is put on sys.path before any test module imports them.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SCRIPTS_DIR = PROJECT_ROOT / "scripts"

if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))


REFERENCE_README = """\
# metalsmith-example

![npm version](https://img.shields.io/npm/v/metalsmith-example.svg)

## Installation

```bash
npm install metalsmith-example
```

## Usage

```js
import Metalsmith from 'metalsmith';
import example from 'metalsmith-example';

Metalsmith(__dirname).use(example({ pattern: '.md' })).build();
```

## Options

| Option | Default | Description |
|--------|---------|-------------|
| pattern | `.md` | Files to process |
"""

REFERENCE_SOURCE = """\
/**
 * @typedef {Object} Options
 * @property {string} [pattern] - Extension of the files to process
 */

/**
 * Two-phase plugin factory: returns the actual plugin function.
 * @param {Options} options
 * @returns {import('metalsmith').Plugin}
 */
export default function example(options = {}) {
  options = { pattern: '.md', ...options };

  const plugin = function example(files, metalsmith, done) {
    const metadata = metalsmith.metadata();
    Object.keys(files)
      .filter((file) => file.endsWith(options.pattern))
      .forEach((file) => {
        const { contents } = files[file];
        if (!Buffer.isBuffer(contents)) {
          return;
        }
        files[file].sitename = metadata.sitename;
      });
    done();
  };

  Object.defineProperty(plugin, 'name', { value: 'example' });
  return plugin;
}
"""

REFERENCE_TEST = """\
import assert from 'node:assert';
import example from '../src/index.js';

describe('metalsmith-example', () => {
  it('exports a factory', () => {
    assert.strictEqual(typeof example(), 'function');
  });
});
"""

REFERENCE_MANIFEST: dict[str, Any] = {
    "name": "metalsmith-example",
    "version": "1.0.0",
    "description": "Example Metalsmith plugin",
    "license": "MIT",
    "type": "module",
    "main": "src/index.js",
    "scripts": {"test": "mocha test/index.js"},
}


def write_plugin(root: Path, files: dict[str, str | dict[str, Any]]) -> Path:
    """Create a plugin tree. Dict values are written as JSON."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, dict):
            content = json.dumps(content, indent=2)
        path.write_text(content, encoding="utf-8")
    return root


def reference_files(**overrides: str | dict[str, Any]) -> dict[str, str | dict[str, Any]]:
    files: dict[str, str | dict[str, Any]] = {
        "package.json": dict(REFERENCE_MANIFEST),
        "README.md": REFERENCE_README,
        "src/index.js": REFERENCE_SOURCE,
        "test/index.js": REFERENCE_TEST,
    }
    files.update(overrides)
    return files


@pytest.fixture
def make_plugin(tmp_path: Path) -> Callable[..., Path]:
    """Factory: make_plugin({"rel/path": content}, name="plugin") -> plugin root."""

    def _make(files: dict[str, str | dict[str, Any]], name: str = "plugin") -> Path:
        return write_plugin(tmp_path / name, files)

    return _make


@pytest.fixture
def minimal_plugin(make_plugin: Callable[..., Path]) -> Path:
    """A directory holding only a package manifest."""
    return make_plugin({"package.json": {"name": "p", "version": "1.0.0"}})


@pytest.fixture
def reference_plugin(make_plugin: Callable[..., Path]) -> Path:
    """Manifest, README with Installation/Usage/Options, src/index.js and test/index.js."""
    return make_plugin(reference_files())
