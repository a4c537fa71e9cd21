"""Prompt templates for planning and content-generating tasks."""

PLANNER_SYSTEM_PROMPT = """You are a senior software engineer who turns product requirements
into small, ordered, verifiable engineering tasks.
Always answer with a single JSON object and nothing else."""


ANALYSIS_PROMPT = """Analyze this product requirements document and extract key information.

Title: {title}
Description: {description}

Requirements:
{requirements}

Acceptance Criteria:
{acceptance_criteria}

Provide:
1. Features to implement (name, description, complexity: low/medium/high)
2. Technical constraints
3. Potential risks (description, probability, impact, mitigation)

Output in JSON format:
{{
  "features": [...],
  "technical_constraints": [...],
  "risks": [...]
}}"""


TASK_GENERATION_PROMPT = """Generate a detailed task plan for implementing this feature.

Title: {title}
Features:
{features}

Technical Constraints:
{constraints}

Tasks are numbered T001, T002, ... in the order you list them.
Reference dependencies by those ids and only point to earlier tasks.

Each task has:
- title
- description (for shell tasks start with "Run: <command>")
- kind: code | file | design | test | analysis | shell
- priority: critical | high | medium | low
- estimate in hours
- dependencies: list of task ids
- output_path: file to produce, if any
- tags: e.g. model, api, component, page, ui, setup

Output in JSON format:
{{
  "tasks": [
    {{
      "title": "...",
      "description": "...",
      "kind": "code",
      "priority": "high",
      "estimate": 4,
      "dependencies": [],
      "output_path": "src/app/service.py",
      "tags": ["api"]
    }}
  ]
}}"""


CODE_TASK_PROMPT = """Write the complete content of the file `{output_path}`.

Task: {title}
Details: {description}
Tags: {tags}

Answer with the file content only. Do not wrap it in Markdown fences
and do not add explanations."""


DESIGN_TASK_PROMPT = """Write a concise Markdown design document for this task.

Task: {title}
Details: {description}

Cover: goal, components and their responsibilities, data flow,
interfaces, risks and open questions."""
