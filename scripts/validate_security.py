#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Security Scanner

Scans the plugin entry point and manifest for security anti-patterns:
- Dynamic code execution (eval, Function constructor, vm.runIn*) - FAIL
- Hardcoded credentials and recognizable token formats - FAIL
- Blocking synchronous I/O inside an async plugin - FAIL
- Credential files committed to the tree - FAIL
- Shell execution without input validation, environment logging,
  missing try/catch and content validation - WARN
- Manifest hygiene: audit script, pinned dependency versions - WARN

Anti-patterns are the only detectors allowed to FAIL; a missing best practice
is reported as a recommendation. The scan is textual (see validate_patterns).
"""

from __future__ import annotations

import re

from mpv_validation_common import AnalysisContext, CheckResult, load_manifest, manifest_scripts
from validate_patterns import ASYNC_RE, Detector, run_detectors

# =============================================================================
# Anti-Pattern Detectors (FAIL on presence)
# =============================================================================

DYNAMIC_CODE_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "eval",
        re.compile(r"(?<![\w.$])eval\s*\("),
        on_match=("FAIL", "eval() usage detected - avoid dynamic code execution"),
    ),
    Detector(
        "function-constructor",
        re.compile(r"\bnew\s+Function\s*\(|(?<![\w.$])Function\s*\(\s*['\"`]"),
        on_match=("FAIL", "Function constructor usage detected - equivalent to eval()"),
    ),
    Detector(
        "vm-execution",
        re.compile(r"\bvm\.(?:runInNewContext|runInThisContext|runInContext|compileFunction)\s*\("),
        on_match=("FAIL", "vm code execution detected - avoid executing dynamic code in build plugins"),
    ),
)

HARDCODED_SECRET_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "hardcoded-password",
        re.compile(r"\b(?:password|passwd|secret)\s*[:=]\s*['\"][^'\"\s]{3,}['\"]", re.IGNORECASE),
        on_match=("FAIL", "Hardcoded password or secret detected - use environment variables instead"),
    ),
    Detector(
        "hardcoded-api-key",
        re.compile(r"\bapi[_-]?key\s*[:=]\s*['\"](?!\$[\{A-Z_])[^'\"\s]{8,}['\"]", re.IGNORECASE),
        on_match=("FAIL", "Hardcoded API key detected - use environment variables instead"),
    ),
    Detector(
        "hardcoded-token",
        re.compile(r"\b(?:access_?|auth_?)?token\s*[:=]\s*['\"][A-Za-z0-9_\-.]{20,}['\"]", re.IGNORECASE),
        on_match=("FAIL", "Hardcoded token detected - use environment variables instead"),
    ),
)

# Recognizable credential formats (label, pattern)
SECRET_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("AWS Access Key", re.compile(r"AKIA[0-9A-Z]{16}")),
    ("Private Key", re.compile(r"-----BEGIN (?:RSA |DSA |EC |OPENSSH )?PRIVATE KEY-----")),
    ("GitHub Personal Access Token", re.compile(r"ghp_[a-zA-Z0-9]{36}")),
    ("GitHub Fine-Grained Personal Access Token", re.compile(r"github_pat_[a-zA-Z0-9_]{22,}")),
    ("npm Access Token", re.compile(r"npm_[a-zA-Z0-9]{36}")),
    ("Slack Token", re.compile(r"xox[baprs]-[0-9a-zA-Z-]{10,}")),
    ("Google API Key", re.compile(r"AIza[0-9A-Za-z\-_]{35}")),
    ("Stripe Secret Key", re.compile(r"sk_live_[a-zA-Z0-9]{24,}")),
    ("Connection String with Credentials", re.compile(r"\b[a-z][a-z0-9+]*://[^:/\s'\"]+:[^@\s'\"]+@[^\s'\"]+")),
)

SECRET_FORMAT_DETECTORS: tuple[Detector, ...] = tuple(
    Detector(
        f"secret-{label.lower().replace(' ', '-')}",
        pattern,
        on_match=("FAIL", f"{label} detected in source - remove it and rotate the credential"),
    )
    for label, pattern in SECRET_PATTERNS
)

SYNC_IN_ASYNC_DETECTOR = Detector(
    "sync-in-async",
    re.compile(
        r"\b(?:readFileSync|writeFileSync|appendFileSync|copyFileSync|readdirSync|statSync|"
        r"mkdirSync|rmSync|execSync|execFileSync|spawnSync)\s*\("
    ),
    on_match=("FAIL", "Blocking synchronous call inside an async plugin - use the async/promises API"),
    requires=(ASYNC_RE,),
)

# =============================================================================
# Best-Practice Detectors (WARN on absence or on risky usage)
# =============================================================================

SHELL_EXEC_RE = re.compile(r"\b(?:exec|execSync|spawn|spawnSync|execFile)\s*\(|child_process")
FILE_OPS_RE = re.compile(r"\bfs\.|readFile|writeFile|\bpromises\b")

PRACTICE_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "shell-validation",
        re.compile(r"sanitize|escape|validat|shell-quote|shellescape|allowlist|whitelist", re.IGNORECASE),
        on_match=("PASS", "Shell execution appears to validate its input"),
        on_miss=("WARN", "Command execution detected without input validation - sanitize arguments"),
        requires=(SHELL_EXEC_RE,),
    ),
    Detector(
        "env-logging",
        re.compile(r"console\.(?:log|info|debug)\([^)]*process\.env"),
        on_match=("WARN", "Environment variables are logged - avoid leaking sensitive configuration"),
    ),
    Detector(
        "file-error-handling",
        re.compile(r"\btry\s*\{|\.catch\s*\("),
        on_match=("PASS", "Error handling present for file operations"),
        on_miss=("WARN", "File operations without error handling - wrap in try/catch"),
        requires=(FILE_OPS_RE,),
    ),
    Detector(
        "async-error-handling",
        re.compile(r"\btry\s*\{|\.catch\s*\("),
        on_miss=("WARN", "Async operations without error handling - handle rejections"),
        requires=(ASYNC_RE,),
        unless=FILE_OPS_RE,
    ),
    Detector(
        "content-validation",
        re.compile(r"Buffer\.isBuffer|instanceof\s+Buffer|typeof\s+\w+(?:\.contents)?\s*[!=]==?\s*['\"]string['\"]|\.length\s*[<>]"),
        on_match=("PASS", "Input content validation detected"),
        on_miss=("WARN", "Validate file contents before processing untrusted input"),
        requires=(re.compile(r"\.contents\b"),),
    ),
)

SECURITY_DETECTORS: tuple[Detector, ...] = (
    DYNAMIC_CODE_DETECTORS
    + HARDCODED_SECRET_DETECTORS
    + SECRET_FORMAT_DETECTORS
    + (SYNC_IN_ASYNC_DETECTOR,)
    + PRACTICE_DETECTORS
)

# Credential files that must not be committed (gitignored copies are fine)
DANGEROUS_FILES = {
    ".env",
    ".env.local",
    ".env.development",
    ".env.production",
    ".env.staging",
    "credentials.json",
    "secrets.json",
    "private.key",
    "id_rsa",
    "id_ed25519",
    "id_dsa",
    "id_ecdsa",
    ".pypirc",
    ".netrc",
    "service-account.json",
    ".htpasswd",
}

# Version specs that float to whatever is newest
FLOATING_VERSION_RE = re.compile(r"^\s*(?:\*|latest|x|)\s*$|^\s*>=?\s*\d")

# =============================================================================
# Check Functions
# =============================================================================


def check_dangerous_files(ctx: AnalysisContext, result: CheckResult) -> int:
    """FAIL for each committed credential file. Returns count found."""
    found = 0
    for rel in ctx.files.glob([f"**/{name}" for name in sorted(DANGEROUS_FILES)]):
        result.fail(f"Credential file committed to the plugin: {rel}", "add it to .gitignore and rotate its secrets")
        found += 1
    return found


def check_manifest_security(ctx: AnalysisContext, result: CheckResult) -> None:
    """Audit script and dependency pinning from package.json."""
    try:
        manifest = load_manifest(ctx.plugin_path)
    except (OSError, ValueError) as e:
        result.info(f"Skipped manifest security checks: {e}")
        return

    scripts = manifest_scripts(manifest)
    if any("audit" in name or "audit" in body for name, body in scripts.items()):
        result.ok("Security audit script configured")
    else:
        result.warn('Consider adding security audit script: "audit": "npm audit"')

    dependencies = manifest.get("dependencies")
    if not isinstance(dependencies, dict):
        return
    floating = sorted(
        name for name, spec in dependencies.items() if isinstance(spec, str) and FLOATING_VERSION_RE.match(spec)
    )
    if floating:
        result.warn(f"Unpinned dependency versions: {', '.join(floating)}", "use ^ or ~ ranges instead of * / latest / >=")
    elif dependencies:
        result.ok("Dependencies use bounded version ranges")


def check_security(ctx: AnalysisContext, result: CheckResult) -> None:
    """Security scan of the entry point source, the file tree and the manifest.

    Raises:
        FileNotFoundError: no entry point source exists
    """
    source, used = ctx.entry_source()
    result.info(f"Analyzed {', '.join(used)}")

    run_detectors(SECURITY_DETECTORS, source, result)
    if not any(f.severity == "FAIL" for f in result.findings):
        result.ok("No dynamic code execution or hardcoded secrets detected")

    check_dangerous_files(ctx, result)
    check_manifest_security(ctx, result)
