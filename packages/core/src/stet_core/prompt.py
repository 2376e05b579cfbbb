"""System and user prompt construction for per-hunk review."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stet_core.diff import Hunk

logger = logging.getLogger(__name__)

OPTIMIZED_PROMPT_FILENAME = "system_prompt_optimized.txt"
USER_INTENT_HEADER = "## User Intent\n"
MAX_PROMPT_SHADOWS = 5
MAX_SHADOW_CHARS = 1500

DEFAULT_SYSTEM_PROMPT = """You are a meticulous defect analyst reviewing one hunk of a code diff.
Work through the hunk step by step and report only real, actionable problems:
bugs, security weaknesses, incorrect behaviour and significant performance issues.
Style remarks are out of scope unless they hide a defect.

## User Intent
(Not provided.)

## How to review
1. Logic: look for off-by-one errors, missing nil/zero/empty checks and broken control flow.
   Identifiers defined outside the hunk are assumed to exist; never report them as undefined.
2. Security: look for injection, unsafe handling of untrusted input and leaked secrets.
   Before reporting, check whether the same function already validates the input.
3. Performance: look for expensive work inside loops and needless blocking calls.
4. Output: keep only findings you are confident in. Fewer precise findings beat many vague ones.
   Never suggest reverting an intentional change or adding code that already exists.

## Output format
Respond with a JSON object of the form {"findings": [...]}. Each finding has:
- file (string): path of the file
- line (integer, optional when range is set): line number in the new file
- range (object, optional): {"start": n, "end": n}
- severity (string): "error" | "warning" | "info" | "nitpick"
- category (string): "bug" | "security" | "correctness" | "performance" | "style" | "maintainability" \
| "best_practice" | "testing" | "documentation" | "design" | "accessibility"
- confidence (number, 0.0 to 1.0): how sure you are the issue is real
- message (string): the review comment
- suggestion (string, optional): a concrete fix

When the hunk has no issues respond with {"findings": []}. Do not write anything outside the JSON."""

NITPICKY_INSTRUCTIONS = """## Nitpicky mode
Also report style, naming, typos, formatting and convention issues. Use severity "nitpick" for these."""


def load_system_prompt(state_dir: str | Path | None) -> str:
    """Return the optimized prompt from the state directory, or the default."""
    if not state_dir:
        return DEFAULT_SYSTEM_PROMPT
    path = Path(state_dir) / OPTIMIZED_PROMPT_FILENAME
    if not path.exists():
        return DEFAULT_SYSTEM_PROMPT
    return path.read_text(encoding="utf-8").strip()


def inject_user_intent(system_prompt: str, branch: str, commit_message: str) -> str:
    """Replace the body of the User Intent section; no-op when the section is absent."""
    idx = system_prompt.find(USER_INTENT_HEADER)
    if idx == -1:
        return system_prompt
    parts = []
    if branch:
        parts.append(f"Branch: {branch}")
    if commit_message:
        parts.append(f"Commit: {commit_message}")
    body = "\n".join(parts).strip() or "(Not provided.)"

    body_start = idx + len(USER_INTENT_HEADER)
    next_section = system_prompt.find("\n## ", body_start)
    end = len(system_prompt) if next_section == -1 else next_section
    return system_prompt[:body_start] + body + "\n" + system_prompt[end:]


def append_prompt_shadows(system_prompt: str, shadows: list[str]) -> str:
    """Append previously dismissed hunks as examples of what not to report."""
    recent = [s for s in shadows if s][-MAX_PROMPT_SHADOWS:]
    if not recent:
        return system_prompt
    lines = [
        "## Previously dismissed",
        "The user dismissed findings on these hunks. Do not raise similar issues on similar code:",
    ]
    for shadow in recent:
        lines.append("```")
        lines.append(shadow[:MAX_SHADOW_CHARS])
        lines.append("```")
    return system_prompt + "\n\n" + "\n".join(lines)


def append_suppression_examples(system_prompt: str, examples: list[str] | None) -> str:
    """Append findings the user dismissed in earlier sessions."""
    if not examples:
        return system_prompt
    lines = ["## Do not report issues like these (the user dismissed them before)"]
    lines.extend(f"- {example}" for example in examples)
    return system_prompt + "\n\n" + "\n".join(lines)


def user_prompt(hunk: Hunk) -> str:
    content = hunk.context or hunk.raw_content
    if not hunk.file_path:
        return content
    return f"File: {hunk.file_path}\n\n{content}"


@dataclass
class PromptBuilder:
    """Builds the (system, user) prompt pair for each hunk of a run.

    The system prompt is assembled once per run since nothing in it depends
    on the hunk.
    """

    state_dir: str | Path | None = None
    branch: str = ""
    commit_message: str = ""
    nitpicky: bool = False
    shadows: list[str] = field(default_factory=list)
    suppression_examples: list[str] | None = None
    _system: str | None = field(default=None, init=False, repr=False)

    def system_prompt(self) -> str:
        if self._system is None:
            prompt = load_system_prompt(self.state_dir)
            prompt = inject_user_intent(prompt, self.branch, self.commit_message)
            if self.nitpicky:
                prompt = prompt + "\n\n" + NITPICKY_INSTRUCTIONS
            prompt = append_prompt_shadows(prompt, self.shadows)
            prompt = append_suppression_examples(prompt, self.suppression_examples)
            self._system = prompt
        return self._system

    def build(self, hunk: Hunk) -> tuple[str, str]:
        return self.system_prompt(), user_prompt(hunk)
