"""Claude Code fix 생성 프롬프트 빌더"""

from autopr.models.error import StackFrame
from autopr.models.fix import FixRequest


OUTPUT_FORMAT = """\
When you are done, respond with a single JSON object:

{
  "success": true,
  "description": "<what was wrong and how the change fixes it>",
  "files": [
    {"path": "<path relative to the repository root>", "content": "<complete new file content>"}
  ]
}

If you cannot produce a safe fix, respond with:

{"success": false, "error": "<why no fix was produced>"}
"""


RULES = """\
Rules:
- You are working in a read-only checkout. Do NOT run git commit or git push; the system commits for you.
- Only fix the specific bug reported. Do not refactor or improve unrelated code.
- Each entry in "files" must contain the FULL new content of the file, not a diff.
- Paths must be relative to the repository root.
"""


def _format_frame(frame: StackFrame) -> str:
    loc = frame.filename or frame.abs_path or frame.module or "?"
    if frame.lineno:
        loc += f":{frame.lineno}"
        if frame.colno:
            loc += f":{frame.colno}"
    line = f"  {loc} in {frame.function or '?'}()"
    if frame.in_app:
        line += " [IN APP]"
    if frame.context_line and frame.context_line.strip():
        line += f"\n    > {frame.context_line.strip()}"
    return line


def build_prompt(req: FixRequest) -> str:
    """FixRequest로 Claude Code 프롬프트 생성"""
    parts = [
        "You are an expert software engineer fixing a production error in this repository.",
        "",
        "## Error Report",
        "",
        f"**Issue**: {req.issue_id}",
        f"**Title**: {req.title}",
        f"**Level**: {req.level or 'error'}",
        f"**Platform**: {req.platform or 'unknown'}",
        "",
        f"**Exception**: {req.error_type or 'Unknown'}",
        f"**Message**: {req.error_message or '(no message)'}",
    ]

    if req.culprit:
        parts += [f"**Culprit**: `{req.culprit}`"]

    if req.frames:
        parts += [
            "",
            "**Stacktrace** (outermost first, innermost last; [IN APP] marks application code):",
            "```",
            *(_format_frame(f) for f in req.frames),
            "```",
        ]

    if req.permalink:
        parts += ["", f"**Sentry URL**: {req.permalink}"]

    parts += [
        "",
        "## Task",
        "",
        "Investigate the repository, find the root cause and write a minimal, correct fix.",
        "",
        RULES,
        OUTPUT_FORMAT,
    ]

    return "\n".join(parts)
