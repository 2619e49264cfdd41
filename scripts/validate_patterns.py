#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Pattern Analyzer

Scans entry point source text for code-shape signatures. Each detector is an
independent predicate over the text (regex presence or absence) paired with
a fixed message; detectors never look at each other's outcome, so catalog
order only affects presentation order.

Detection is textual, not semantic: a commented-out construct is still seen.
That false-positive/false-negative tradeoff is accepted; there is no parser.

Catalogs implemented here:
- performance          files iteration, RegExp placement, Buffer handling, cloning
- jsdoc                typedefs, @param/@returns, documented main export
- metalsmith-patterns  factory pattern, (files, metalsmith, done) signature,
                       metadata handling, error propagation via done(err)
- integration          interplay with other plugins, README pipeline guidance

The security catalog lives in validate_security.py and uses the same model.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from mpv_validation_common import AnalysisContext, CheckResult, Severity, read_text

# =============================================================================
# Detector Model
# =============================================================================

Outcome = tuple[Severity, str]


@dataclass(frozen=True)
class Detector:
    """One signature detector.

    Attributes:
        name: Stable identifier
        pattern: Signature searched in the source text
        on_match: Finding emitted when the pattern is present
        on_miss: Finding emitted when the pattern is absent; never FAIL,
            a missing best practice is only ever a recommendation
        requires: Every one of these must also be present for the detector
            to apply at all (e.g. only check done() when the plugin is async)
        unless: The detector does not apply when this is present
    """

    name: str
    pattern: re.Pattern[str]
    on_match: Outcome | None = None
    on_miss: Outcome | None = None
    requires: tuple[re.Pattern[str], ...] = ()
    unless: re.Pattern[str] | None = None

    def __post_init__(self) -> None:
        if self.on_miss is not None and self.on_miss[0] == "FAIL":
            raise ValueError(f"Detector '{self.name}': absence of a construct cannot be a FAIL")

    def applies(self, text: str) -> bool:
        if any(not r.search(text) for r in self.requires):
            return False
        return not (self.unless is not None and self.unless.search(text))

    def evaluate(self, text: str) -> Outcome | None:
        """Outcome for this text, or None when the detector stays silent."""
        if not self.applies(text):
            return None
        return self.on_match if self.pattern.search(text) else self.on_miss


def run_detectors(detectors: Iterable[Detector], text: str, result: CheckResult) -> int:
    """Evaluate every detector against text, adding findings in catalog order.

    Returns:
        Number of findings added
    """
    added = 0
    for detector in detectors:
        outcome = detector.evaluate(text)
        if outcome is None:
            continue
        severity, message = outcome
        result.add(severity, message)
        added += 1
    return added


def _re(pattern: str, flags: int = 0) -> re.Pattern[str]:
    return re.compile(pattern, flags)


# Building blocks shared by several catalogs
ASYNC_RE = _re(r"\bawait\b|\bPromise\b|\basync\b")
DONE_CALL_RE = _re(r"\bdone\s*\(")
CONTENTS_RE = _re(r"\bcontents\b|Buffer\.from|\.toString\(")
BUFFER_CONCAT_RE = _re(r"\.contents\s*\+|\+\s*file\.contents|contents\s*\+=|\.toString\(\)\s*\+|\+\s*['\"`].*\.contents")
FILTER_RE = _re(r"Object\.keys\(files\)\.filter|\.filter\(")
GLOBAL_METADATA_RE = _re(r"metalsmith\.metadata\(\)")
EXTENSION_RE = _re(r"\.endsWith\(|extname\(|\.ext\b|\.extension\b|\\\.\w+\$")
REGEXP_IN_LOOP_RE = _re(
    r"(?:for|while)\s*\([^{}]*\)\s*\{[^}]*new\s+RegExp|forEach\s*\([^{}]*\{[^}]*new\s+RegExp", re.DOTALL
)

# =============================================================================
# Performance Catalog
# =============================================================================

PERFORMANCE_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "files-iteration",
        _re(r"Object\.(?:keys|entries)\(files\)|for\s*\(\s*(?:const|let|var)?\s*\w+\s+in\s+files\s*\)|files\["),
        on_match=("PASS", "Proper files object iteration detected"),
        on_miss=("WARN", "Use Object.keys(files) or for...in to iterate over files object"),
        requires=(_re(r"\bfiles\b|\bmetalsmith\b"),),
    ),
    Detector(
        "regexp-in-loop",
        REGEXP_IN_LOOP_RE,
        on_match=("WARN", "Pre-compile RegExp patterns outside loops when processing file contents"),
    ),
    Detector(
        "regexp-placement",
        _re(r"new\s+RegExp|/[^/\n*][^/\n]*/[gimsuy]*\.(?:test|exec)\(|\.(?:replace|match|split)\(\s*/[^/\n]+/"),
        on_match=("PASS", "RegExp patterns appear optimally placed"),
        unless=REGEXP_IN_LOOP_RE,
    ),
    Detector(
        "buffer-string-concat",
        BUFFER_CONCAT_RE,
        on_match=("WARN", "Use Buffer methods instead of string concatenation for file.contents manipulation"),
        requires=(CONTENTS_RE,),
    ),
    Detector(
        "buffer-handling",
        CONTENTS_RE,
        on_match=("PASS", "Efficient Buffer handling for file.contents detected"),
        unless=BUFFER_CONCAT_RE,
    ),
    Detector(
        "file-filtering",
        FILTER_RE,
        on_match=("PASS", "File filtering before processing detected"),
        on_miss=("WARN", "Consider filtering files before expensive content transformations"),
        requires=(_re(r"files\[[^\]]*\]\.contents|\btransform|\bprocess"),),
    ),
    Detector(
        "destructuring",
        _re(r"(?:const|let)\s*\{[^}]*\b(?:contents|stats)\b[^}]*\}\s*="),
        on_match=("PASS", "Efficient destructuring of file properties detected"),
        on_miss=("WARN", "Consider destructuring file properties: const { contents, stats } = file"),
        requires=(CONTENTS_RE,),
    ),
    Detector(
        "async-done",
        DONE_CALL_RE,
        on_match=("PASS", "Proper async plugin pattern with done() callback"),
        on_miss=("WARN", "Async operations detected but no done() callback - may cause build issues"),
        requires=(ASYNC_RE,),
    ),
    Detector(
        "sync-plugin",
        ASYNC_RE,
        on_miss=("PASS", "Synchronous plugin pattern (no done() needed)"),
        unless=DONE_CALL_RE,
    ),
    Detector(
        "files-cloning",
        _re(r"JSON\.parse\(\s*JSON\.stringify|Object\.assign\(\s*\{\}\s*,\s*files\b|\.\.\.files\b|lodash\.clone|structuredClone\(\s*files\b"),
        on_match=("WARN", "Avoid cloning the entire files object - modify files in place when possible"),
    ),
    Detector(
        "metadata-access",
        _re(r"metalsmith\.metadata\(\)|files\[[^\]]*\]\.\w+"),
        on_match=("PASS", "Proper metadata access patterns detected"),
    ),
)

# =============================================================================
# JSDoc Catalog
# =============================================================================

DEFAULT_EXPORT_FN_RE = _re(r"export\s+default\s+function\b")

JSDOC_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "options-typedef",
        _re(r"@typedef\s+\{[^}]*\}\s+Options\b", re.IGNORECASE),
        on_match=("PASS", "JSDoc @typedef for Options found"),
        on_miss=("WARN", "Consider adding @typedef for Options type to improve IDE support"),
    ),
    Detector(
        "main-export-documented",
        _re(r"\*/\s*export\s+default\s+function\b"),
        on_match=("PASS", "Main export function has JSDoc documentation"),
        on_miss=("WARN", "Add JSDoc documentation to main export function with @param and @returns"),
        requires=(DEFAULT_EXPORT_FN_RE,),
    ),
    Detector(
        "plugin-return-type",
        _re(r"@returns?\s+\{[^}]*import\(['\"]metalsmith['\"]\)\.Plugin\}", re.IGNORECASE),
        on_match=("PASS", "JSDoc return type annotation includes Metalsmith.Plugin type"),
        on_miss=("WARN", "Use @returns {import('metalsmith').Plugin} for better IDE support"),
    ),
    Detector(
        "param-docs",
        _re(r"@param\s+\{[^}]+\}"),
        on_match=("PASS", "JSDoc parameter documentation found"),
        on_miss=("WARN", "Add @param documentation for function parameters"),
    ),
    Detector(
        "function-name",
        _re(r"Object\.defineProperty\([^,]+,\s*['\"]name['\"]\s*,"),
        on_match=("PASS", "Function name set with Object.defineProperty for debugging"),
        on_miss=("WARN", "Use Object.defineProperty to set function name for better debugging"),
    ),
    Detector(
        "two-phase-documented",
        _re(r"two-phase|factory.*return.*plugin|return.*actual.*plugin", re.IGNORECASE),
        on_match=("PASS", "Two-phase plugin pattern documented"),
        on_miss=("WARN", "Document the two-phase plugin pattern in comments for clarity"),
    ),
)

# Share of utility files that must carry a JSDoc block
UTIL_JSDOC_COVERAGE = 0.8

# =============================================================================
# Metalsmith Patterns Catalog
# =============================================================================

FACTORY_RE = _re(
    r"export\s+default\s+function\s*\w*\s*\([^)]*\)\s*\{.*?"
    r"(?:function\s*\w*\s*\(\s*files\b|\(\s*files\s*,[^)]*\)\s*=>)",
    re.DOTALL,
)
DIRECT_EXPORT_RE = _re(r"export\s+default\s+(?:async\s+)?function\s*\w*\s*\(\s*files\s*,\s*metalsmith\b")

METALSMITH_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "factory-pattern",
        FACTORY_RE,
        on_match=("PASS", "Proper two-phase plugin factory pattern detected"),
        on_miss=(
            "WARN",
            "Consider using factory pattern: export default function(options) "
            "{ return function(files, metalsmith, done) {...} }",
        ),
        requires=(DIRECT_EXPORT_RE,),
    ),
    Detector(
        "factory-pattern-present",
        FACTORY_RE,
        on_match=("PASS", "Proper two-phase plugin factory pattern detected"),
        unless=DIRECT_EXPORT_RE,
    ),
    Detector(
        "plugin-signature",
        _re(r"function\s*\w*\s*\(\s*files\s*,\s*metalsmith\s*(?:,\s*done\s*)?\)|\(\s*files\s*,\s*metalsmith\s*(?:,\s*done\s*)?\)\s*=>"),
        on_match=("PASS", "Correct Metalsmith plugin function signature detected"),
        on_miss=("WARN", "Plugin function should accept (files, metalsmith, done) parameters"),
    ),
    Detector(
        "files-interaction",
        _re(r"files\[[^\]]*\]|delete\s+files\[|Object\.(?:keys|entries)\(files\)"),
        on_match=("PASS", "Plugin properly interacts with files object"),
        on_miss=("WARN", "Plugin should interact with the files object to transform content"),
    ),
    Detector(
        "file-metadata",
        _re(r"Object\.assign\([^)]*file|\.\.\.file\b|\bfile\.(?!contents\b)\w+"),
        on_match=("PASS", "Plugin works with file metadata"),
        on_miss=("WARN", "Consider preserving or enhancing file metadata for better plugin integration"),
    ),
    Detector(
        "buffer-validation",
        _re(r"Buffer\.isBuffer|instanceof\s+Buffer"),
        on_match=("PASS", "Proper Buffer validation for file.contents"),
        on_miss=("WARN", "Validate file.contents is a Buffer before processing"),
        requires=(CONTENTS_RE,),
    ),
    Detector(
        "global-metadata",
        GLOBAL_METADATA_RE,
        on_match=("PASS", "Plugin accesses global metadata"),
        on_miss=("WARN", "Consider using metalsmith.metadata() for site-wide configuration"),
    ),
    Detector(
        "filters-by-type",
        EXTENSION_RE,
        on_match=("PASS", "Plugin filters files by type/pattern"),
        requires=(FILTER_RE,),
    ),
    Detector(
        "unfiltered-processing",
        FILTER_RE,
        on_miss=("WARN", "Consider filtering files by extension/pattern before processing"),
        requires=(CONTENTS_RE,),
    ),
    Detector(
        "layout-convention",
        _re(r"\blayout"),
        on_match=("PASS", "Plugin respects the layout convention"),
    ),
    Detector(
        "collection-convention",
        _re(r"\bcollection"),
        on_match=("PASS", "Plugin respects the collections convention"),
    ),
    Detector(
        "draft-convention",
        _re(r"\bdraft"),
        on_match=("PASS", "Plugin respects the drafts convention"),
    ),
    Detector(
        "options-defaults",
        _re(r"options\s*=\s*\{|Object\.assign\([^)]*options|\.\.\.options\b"),
        on_match=("PASS", "Plugin handles options properly"),
        on_miss=("WARN", "Add default options handling: options = { ...defaults, ...options }"),
    ),
    Detector(
        "plugin-name",
        _re(r"Object\.defineProperty\([^,]+,\s*['\"]name['\"]"),
        on_match=("PASS", "Plugin function name set for debugging"),
        on_miss=(
            "WARN",
            'Set function name for better debugging: Object.defineProperty(plugin, "name", { value: "pluginName" })',
        ),
    ),
    Detector(
        "chainability",
        _re(r"return\s+metalsmith\b"),
        on_miss=("WARN", "Non-plugin functions should return metalsmith instance for chainability"),
        unless=_re(FACTORY_RE.pattern + "|" + DIRECT_EXPORT_RE.pattern, re.DOTALL),
    ),
    Detector(
        "error-propagation",
        _re(r"done\s*\(\s*(?:err|error|e)\s*\)|\.catch\s*\(\s*done\s*\)"),
        on_match=("PASS", "Proper error propagation in async plugin"),
        on_miss=("WARN", "Async plugin should propagate errors via done(err)"),
        requires=(ASYNC_RE, DONE_CALL_RE),
    ),
)

# =============================================================================
# Integration Catalog
# =============================================================================

INTEGRATION_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "file-metadata",
        _re(r"files\[[^\]]*\]\.(?!contents\b)\w+|Object\.assign\(\s*files\["),
        on_match=("PASS", "Plugin respects/modifies file metadata appropriately"),
        on_miss=("WARN", "Ensure plugin works with file metadata from other plugins (e.g., frontmatter, collections)"),
    ),
    Detector(
        "global-metadata",
        GLOBAL_METADATA_RE,
        on_match=("PASS", "Plugin accesses global metadata"),
        on_miss=("WARN", "Consider using metalsmith.metadata() to access site-wide information"),
    ),
    Detector(
        "layouts",
        _re(r"layout|template"),
        on_match=("PASS", "Plugin appears compatible with layouts (layout property handling)"),
    ),
    Detector(
        "collections",
        _re(r"collection|group"),
        on_match=("PASS", "Plugin appears compatible with collections (collection membership)"),
    ),
    Detector(
        "markdown",
        _re(r"\.md\b|markdown"),
        on_match=("PASS", "Plugin appears compatible with markdown (markdown file processing)"),
    ),
    Detector(
        "frontmatter",
        _re(r"frontmatter|yaml|\btitle\b|\bdate\b"),
        on_match=("PASS", "Plugin appears compatible with frontmatter (frontmatter data usage)"),
    ),
    Detector(
        "extension-handling",
        _re(r"\.endsWith\(|extname|\.ext\b|\.extension\b"),
        on_match=("PASS", "Plugin handles file extensions properly"),
        on_miss=("WARN", "Consider adding file extension validation for better plugin integration"),
    ),
)

README_ORDERING_RE = _re(r"order|before|after|sequence|pipeline|placement|position", re.IGNORECASE)
README_PIPELINE_RE = _re(r"\.use\([^)]*\).*?\.use\([^)]*\)", re.DOTALL)
README_COMMON_PLUGINS_RE = _re(r"@metalsmith/|metalsmith-layouts|metalsmith-markdown|metalsmith-collections")
INTEGRATION_TEST_RE = _re(r"metalsmith-|@metalsmith/|layouts|markdown|collections")

# =============================================================================
# Check Functions
# =============================================================================


def _entry_text(ctx: AnalysisContext, result: CheckResult) -> str:
    """Entry source for pattern checks; a missing source propagates as an I/O error."""
    source, used = ctx.entry_source()
    result.info(f"Analyzed {', '.join(used)}")
    return source


def check_performance(ctx: AnalysisContext, result: CheckResult) -> None:
    run_detectors(PERFORMANCE_DETECTORS, _entry_text(ctx, result), result)


def check_jsdoc(ctx: AnalysisContext, result: CheckResult) -> None:
    """JSDoc quality of the entry point plus coverage of src/utils files."""
    run_detectors(JSDOC_DETECTORS, _entry_text(ctx, result), result)

    util_files = ctx.files.glob(["src/utils/**/*.js", "src/utils/**/*.mjs", "src/utils/**/*.ts"])
    if not util_files:
        return
    documented = 0
    for rel in util_files:
        try:
            if "/**" in read_text(ctx.plugin_path / rel):
                documented += 1
        except (OSError, UnicodeDecodeError) as e:
            result.info(f"Could not read {rel}: {e}")
    if documented >= len(util_files) * UTIL_JSDOC_COVERAGE:
        result.ok(f"Utility files have good JSDoc coverage ({documented}/{len(util_files)})")
    else:
        result.warn(f"Add JSDoc documentation to utility functions ({documented}/{len(util_files)} documented)")


def check_metalsmith_patterns(ctx: AnalysisContext, result: CheckResult) -> None:
    run_detectors(METALSMITH_DETECTORS, _entry_text(ctx, result), result)


def check_integration(ctx: AnalysisContext, result: CheckResult) -> None:
    """Interplay with other plugins: entry source, README guidance and tests."""
    run_detectors(INTEGRATION_DETECTORS, _entry_text(ctx, result), result)

    readme_path = ctx.plugin_path / "README.md"
    if readme_path.is_file():
        readme = read_text(readme_path)
        if README_ORDERING_RE.search(readme):
            result.ok("Plugin documentation includes ordering considerations")
        else:
            result.warn("Document plugin ordering requirements in README (before/after other plugins)")
        if README_PIPELINE_RE.search(readme):
            result.ok("README includes plugin pipeline examples")
        else:
            result.warn("Add complete Metalsmith pipeline examples to README showing integration with other plugins")
        if README_COMMON_PLUGINS_RE.search(readme):
            result.ok("Documentation references common Metalsmith plugins")
        else:
            result.warn("Consider mentioning compatibility with common plugins in documentation")
    else:
        result.info("No README.md; skipped documentation integration checks")

    for rel in ctx.files.glob(["test/**/*.js", "test/**/*.cjs", "test/**/*.mjs"]):
        try:
            if INTEGRATION_TEST_RE.search(read_text(ctx.plugin_path / rel)):
                result.ok("Integration tests with other plugins detected", rel)
                return
        except (OSError, UnicodeDecodeError):
            continue
    result.warn("Consider adding integration tests with common Metalsmith plugins")
