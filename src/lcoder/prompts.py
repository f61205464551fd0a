"""Prompt templates and input renderers for the three agent personas."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from .memory.schema import Plan, Step, StepExecutionResult

JSON_RESPONSE_RULES = (
    "CRITICAL JSON RULES:\n"
    "1. Output ONLY valid JSON - no explanation, no markdown, no thinking.\n"
    "2. Start your response IMMEDIATELY with { (the opening brace).\n"
    "3. Escape every string properly: use \\n for newlines, \\\" for quotes, \\\\ for backslashes.\n"
    "4. Keep all text short and simple."
)

PLANNER_SYSTEM_PROMPT = f"""You are a planning agent specialized in breaking down software development tasks.

{JSON_RESPONSE_RULES}

Your role:
1. Analyze the user's request and the codebase context.
2. Break the task into clear, ordered steps.
3. Identify files that need to be created or modified.
4. Estimate complexity and time, then output the JSON plan immediately.

JSON schema (output this and nothing else):
{{
  "goal": "string - what the user wants to achieve",
  "context": "string - brief codebase summary",
  "complexity": "low|medium|high",
  "estimated_time": "string - e.g. '30 minutes'",
  "steps": [
    {{
      "order": number,
      "description": "string - what to do",
      "type": "code|test|doc|config",
      "files": ["array of file paths"],
      "dependencies": [array of step orders this depends on],
      "estimated_minutes": number
    }}
  ]
}}

Guidelines:
- Keep steps atomic (one clear action each).
- Order steps logically (models before the code that uses them).
- Be specific about file paths relative to the project root.
- Include tests as separate steps.
- Never emit more than {{max_steps}} steps; split very large tasks into phases.
"""

EXECUTOR_SYSTEM_PROMPT = """You are an execution agent specialized in implementing code changes.

Your role:
1. Implement ONE specific step at a time.
2. Write clean, working code that follows the project's existing patterns.
3. Stay focused on the current step only.

File editing syntax (always show the COMPLETE file content):
```write:path/to/file.ext
[complete file content here]
```

For shell commands, use a fenced shell block:
```bash
pip install some-package
```

Focus on implementation quality. Don't review, just execute.
"""

REVIEWER_SYSTEM_PROMPT = f"""You are a code review agent specialized in finding issues and suggesting improvements.

{JSON_RESPONSE_RULES}
5. Never include code examples in JSON strings; describe fixes in words.

Focus areas:
- security: injection, authentication problems, secrets in code
- bug: null handling, off-by-one errors, races, logic errors
- performance: inefficient algorithms, needless I/O, leaks
- style: naming, formatting, readability, maintainability

JSON schema (output this and nothing else):
{{
  "approved": boolean,
  "score": number (0-10),
  "summary": "string - brief overall assessment",
  "issues": [
    {{
      "severity": "critical|warning|info",
      "category": "security|bug|performance|style",
      "message": "string - what is wrong",
      "file": "string - file path (if applicable)",
      "line": number (if applicable),
      "suggestion": "string - how to fix, in words"
    }}
  ],
  "suggestions": ["brief improvement suggestions"]
}}

Severity: critical = security holes, data loss, crashes; warning = bugs, poor performance,
maintainability problems; info = style and minor improvements.
Score: 9-10 production-ready, 7-8 minor issues, 5-6 acceptable, 3-4 needs work, 0-2 not ready.
"""


def render_planner_system_prompt(max_steps: int) -> str:
    return PLANNER_SYSTEM_PROMPT.replace("{max_steps}", str(max_steps))


def render_planner_input(goal: str, context: Optional[str]) -> str:
    sections = [f"Task: {goal}"]
    if context and context.strip():
        sections.append(f"Codebase Context:\n{context}")
    sections.append("Create an execution plan as JSON.")
    return "\n\n".join(sections)


def render_executor_input(
    step: Step,
    context: Optional[str],
    read_file: Callable[[str], Optional[str]],
) -> str:
    """Describe the step and inline the current content of every declared file."""
    lines = [
        "Execute this step:",
        f"Step {step.order}: {step.description}",
        f"Type: {step.type}",
        "",
    ]
    if step.files:
        lines.append("Files to modify/create:")
        for path in step.files:
            lines.append(f"  - {path}")
            existing = read_file(path)
            if existing is not None:
                lines.extend(["", f"Current content of {path}:", "```", existing, "```", ""])
    if context and context.strip():
        lines.extend(["", "Codebase Context:", context])
    lines.extend(["", "Implement this step now."])
    return "\n".join(lines)


def render_step_review_input(result: StepExecutionResult, context: Optional[str]) -> str:
    lines = [
        "Review this implementation:",
        f"Step: {result.step.description}",
        "",
        "Changes made:",
        result.response,
        "",
    ]
    if result.actions:
        lines.append("Actions taken:")
        for action in result.actions:
            marker = "ok" if action.success else "failed"
            lines.append(f"  [{marker}] {action.kind.value}: {action.target}")
        lines.append("")
    if context and context.strip():
        lines.extend(["Additional Context:", context, ""])
    lines.append("Provide code review as JSON.")
    return "\n".join(lines)


def render_plan_review_input(plan: Plan, context: Optional[str]) -> str:
    lines = [
        "Review this complete implementation:",
        f"Goal: {plan.goal}",
        f"Steps completed: {plan.completed_steps}/{plan.total_steps}",
        "",
    ]
    for step in plan.steps:
        if not step.completed:
            continue
        lines.append(f"Step {step.order}: {step.description}")
        if step.result.strip():
            lines.extend([step.result, ""])
    if context and context.strip():
        lines.extend(["Codebase Context:", context, ""])
    lines.append("Provide code review as JSON.")
    return "\n".join(lines)


def render_code_review_input(target: str, code: str, focus: str = "all") -> str:
    """Ask for a standalone review of existing code, optionally narrowed to one concern."""
    lines = [
        "Please perform a thorough code review of the following code.",
        f"Target: {target}",
        f"Focus: {focus}",
        "",
        "Report each issue with its severity, category, location (file and line if possible),",
        "a description, and a suggested fix. End with an overall summary and score.",
        "",
        "Code to review:",
        code,
        "",
        "Provide code review as JSON.",
    ]
    return "\n".join(lines)


def render_workspace_line(project_root: Path) -> str:
    return f"All file paths are relative to the project root at {project_root.as_posix()}."


__all__ = [
    "EXECUTOR_SYSTEM_PROMPT",
    "JSON_RESPONSE_RULES",
    "PLANNER_SYSTEM_PROMPT",
    "REVIEWER_SYSTEM_PROMPT",
    "render_code_review_input",
    "render_executor_input",
    "render_plan_review_input",
    "render_planner_input",
    "render_planner_system_prompt",
    "render_step_review_input",
    "render_workspace_line",
]
