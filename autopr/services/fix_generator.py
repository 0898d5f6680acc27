"""Fix 생성 서비스 - Claude Code CLI 서브프로세스

claude CLI를 clone된 레포 디렉토리에서 실행하고, 출력 텍스트에 섞여 있는 JSON
결과(FixResult)를 뽑아낸다. 도구는 JSON 앞뒤로 설명 문장이나 코드 펜스를 붙일 수
있으므로 첫 번째 top-level JSON 객체만 찾는다.
"""

import asyncio
import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from autopr.core.config import Settings
from autopr.models.fix import FixRequest, FixResult
from autopr.prompts.fix_error import build_prompt

logger = logging.getLogger(__name__)


class FixGenerationError(Exception):
    """fix 생성 실패 (도구 실패, 타임아웃, 출력 파싱 실패, 도구가 fix 거부)"""


def extract_json(text: str) -> str:
    """텍스트에서 첫 번째 brace-balanced top-level JSON 객체 추출. 없으면 ""

    문자열 리터럴 안의 중괄호와 escape(\\")는 무시한다.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue

            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]

        # 닫히지 않은 객체 → 다음 "{"부터 다시 시도
        start = text.find("{", start + 1)

    return ""


def parse_fix_output(output: str) -> FixResult:
    """도구 출력 → FixResult"""
    raw = extract_json(output)
    if not raw:
        raise FixGenerationError("no JSON object found in fix generator output")

    try:
        return FixResult.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise FixGenerationError(f"invalid fix generator output: {e}") from e


class ClaudeCodeService:
    """claude CLI로 fix 생성"""

    def __init__(self, settings: Settings):
        self.claude_path = settings.claude_path
        self.timeout = settings.fix_timeout
        self.api_key = settings.anthropic_api_key

    def _command(self, prompt: str) -> list[str]:
        return [self.claude_path, "-p", prompt, "--output-format", "text"]

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.api_key:
            env["ANTHROPIC_API_KEY"] = self.api_key
        return env

    async def generate(self, req: FixRequest, repo_dir: Path) -> FixResult:
        """fix 생성. 실패/거부 시 FixGenerationError"""
        prompt = build_prompt(req)
        logger.info("[fix] Running %s for issue %s in %s", self.claude_path, req.issue_id, repo_dir)

        output = await self._run(self._command(prompt), repo_dir)
        result = parse_fix_output(output)

        if not result.success:
            raise FixGenerationError(f"fix generator declined: {result.error or 'no reason given'}")
        if not result.files:
            raise FixGenerationError("fix generator proposed no file changes")

        logger.info("[fix] Issue %s: %d file(s) changed", req.issue_id, len(result.files))
        return result

    async def _run(self, cmd: list[str], cwd: Path) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self._env(),
            )
        except OSError as e:
            raise FixGenerationError(f"failed to start {cmd[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise FixGenerationError(f"{cmd[0]} timed out after {self.timeout:.0f}s")

        if proc.returncode != 0:
            raise FixGenerationError(
                f"{cmd[0]} exited with {proc.returncode}: {stderr.decode(errors='replace').strip()[:500]}"
            )
        return stdout.decode(errors="replace")
