"""Judge prompt rendering.

The rendered prompt embeds the context logs verbatim, so identical evidence
always produces an identical prompt.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING

from ..config import settings

if TYPE_CHECKING:  # pragma: no cover - import cycles avoided at runtime
    from ..context import TaskSpec
    from ..schemas import CommandResult

DIFF_HEADER = re.compile(r"^diff --git a/(.+?) b/", re.MULTILINE)


def extract_changed_files(diff: str | None) -> list[str]:
    """Paths touched by a unified git diff, in diff order."""
    if not diff:
        return []
    return DIFF_HEADER.findall(diff)


def build_file_scope_section(changed_files: list[str], expected_files: Sequence[str] | None) -> str:
    if not expected_files:
        return ""

    expected = set(expected_files)
    missing = [path for path in expected_files if path not in changed_files]
    unexpected = [path for path in changed_files if path not in expected]

    parts = ["\n## File Scope Analysis"]
    parts.append(f"\n**Expected files:** {', '.join(expected_files)}")
    parts.append(f"**Actually changed:** {', '.join(changed_files) if changed_files else '(none)'}")
    if missing:
        parts.append(f"\n**Missing expected files:** {', '.join(missing)}")
    if unexpected:
        parts.append(f"\n**Unexpected file changes:** {', '.join(unexpected)}")
    parts.extend(
        [
            "\n**Instructions for file scope:**",
            "- All expected files MUST be modified. Missing expected files should significantly reduce the score.",
            "- Unexpected file changes are acceptable ONLY if they are directly necessary for the task "
            "(e.g., updating imports, adding new test files).",
            "- If many unexpected files are changed, this may indicate scope creep. Lower the score and explain why.",
        ]
    )
    return "\n".join(parts)


def _task_block(index: int, task: TaskSpec, result: CommandResult) -> str:
    stdout = result.stdout[: settings.judge.max_task_output_chars]
    stderr = result.stderr[: settings.judge.max_task_stderr_chars]
    output = f"{stdout}\nSTDERR:\n{stderr}" if result.stderr else stdout
    return (
        f"### Task {index}: {task.name} (weight: {task.effective_weight})\n"
        f"**Criteria:** {task.criteria}\n"
        f"**Exit code:** {result.exit_code}\n"
        f"**Output:**\n```\n{output}\n```"
    )


def build_judge_prompt(
    criteria: str,
    logs: str,
    *,
    diff: str | None = None,
    instruction: str | None = None,
    task_results: Sequence[tuple[TaskSpec, CommandResult]] = (),
    expected_files: Sequence[str] | None = None,
) -> str:
    """Render the judge prompt from criteria and captured evidence.

    Args:
        criteria: Markdown evaluation criteria
        logs: Rendered context logs (diff section plus command sections)
        diff: Captured diff, used for the file scope analysis
        instruction: Prompt given to the agent in declarative mode
        task_results: Declared tasks paired with their command results
        expected_files: Files the agent was expected to touch

    Returns:
        Prompt text asking for ``{pass, score, reason, improvement}`` JSON
    """
    file_scope = build_file_scope_section(extract_changed_files(diff), expected_files)

    instruction_section = (
        f'\n## Agent Instruction\nThe agent was asked to: "{instruction}"\n' if instruction else ""
    )

    task_section = ""
    task_scoring = ""
    if task_results:
        total_weight = sum(task.effective_weight for task, _ in task_results)
        blocks = "\n\n".join(
            _task_block(i, task, result) for i, (task, result) in enumerate(task_results, start=1)
        )
        task_section = (
            f"\n## Task Results ({len(task_results)} tasks, total weight: {total_weight:g})\n"
            f"{blocks}\n"
        )
        task_scoring = (
            "- For each task, assess whether its criteria were met. Weight the scores accordingly.\n"
            "- A task with exit code 0 and output matching its criteria should score positively.\n"
            "- A task with non-zero exit code should score negatively unless the criteria explicitly allow it.\n"
        )

    return f"""You are an expert code reviewer acting as a Judge for an AI coding agent evaluation.

## Evaluation Criteria
{criteria}
{instruction_section}{task_section}
## Code Changes
{logs or "(no logs captured)"}
{file_scope}

## Scoring Instructions
- Evaluate whether the agent's code changes correctly fulfill the criteria.
{task_scoring}- Score from 0.0 (complete failure) to 1.0 (perfect execution).
- Set pass=true if the overall score is satisfactory.
- Provide a detailed Markdown explanation in "reason".
- Provide actionable Markdown suggestions in "improvement" to help the agent achieve a higher score. If the score is 1.0, write "No improvement needed.".
- Be strict but fair. Partial credit is encouraged.
- Respond ONLY with valid JSON: {{ "pass": boolean, "score": number, "reason": string, "improvement": string }}"""
