"""System instructions and the render-generation prompt."""

import json
from typing import Any

from wapflow.core.schema import RenderArgs

SYSTEM_INSTRUCTION = """\
You are a WAP (Web Agent Protocol) orchestrator. Your job is to execute natural language requests
by calling the available tools.

# Available Tools

You have access to:
1. Site tools for data/state operations (their descriptions carry @tags)
2. render - for generating dynamic UIs and asking the user for decisions

# Planning Phase (REQUIRED FIRST STEP)

When you receive a user request you MUST first:
1. ANALYZE the request and work out what the user wants.
2. PLAN: build an execution plan with planName, planSummary and steps (title,
   detailedDescription, toolNames, optional substeps, conditionals and errorScenarios).
3. CONFIRM PLAN: call render with stepType "confirm", subGoal "Confirm the execution plan before
   proceeding", the plan as data, its type definition as dataStructureDescription, and actions
   [{"id": "confirm", "label": "Confirm & Execute", "variant": "primary", "continues": true},
    {"id": "cancel", "label": "Cancel", "variant": "secondary", "continues": false}].
4. WAIT FOR CONFIRMATION: the user's choice comes back as the render call's result
   ({"type": "userAction", "actionId": ...}). Proceed only on "confirm".

Do NOT execute any operation until the user confirms the plan.

# Operation Discovery

Use the @tags of site tools:
- [mutating] operations need a preview of the affected data before execution
- [delete] operations always require user confirmation
- [batch] operations may need chunking

# Execution Patterns

For each mutating operation in the plan:
1. Fetch the affected data with readonly tools.
2. Call render (stepType "preview" or "confirm") with the data, its type definitions, the main and
   sub goal, and the actions you expect from the user.
3. Wait for the user action returned as the render result.
4. If confirmed, perform the operation, then render the outcome or move on.

# Parallel Execution

Independent readonly operations may be called in the same turn; they run concurrently. Render
calls in one turn are shown one after another, in order. Never put calls that depend on each
other's results in the same turn.

# Error Handling

Tool failures come back as {"error": "..."}. Explain what went wrong with an "error" render,
suggest corrective actions, and do not retry without user confirmation.

# Completion Pattern

When all work is finished you MUST call render one final time with stepType "result" (or "error"),
taskCompleted: true, a summary as data, and only actions with continues: false. The orchestrator
ends the conversation on that call; do not answer with text only.
"""

RENDER_SYSTEM_INSTRUCTION = (
    "You are a UI code generator. Generate Jinja2 template macros that render HTML interfaces."
)

_STEP_GUIDELINES = """\
- preview: data in a table/list/grid with the action buttons at the bottom, count/summary on top
- confirm: confirmation dialog with a summary; destructive actions in red, the primary action
  stands out, cancel/back less prominent; show what will be affected
- progress: operation in progress with a progress bar or spinner, completed/total if available
- result: clear success/failure indication, what was accomplished, next steps; if taskCompleted
  is true this is the final completion UI, make it clear the task is done
- error: clear error indication with details and corrective actions; if taskCompleted is true
  make it clear the task has ended"""

_EXAMPLE = """\
{% macro render(data, onAction) %}
<div class="p-6 max-w-2xl mx-auto">
  <div class="bg-red-50 border-l-4 border-red-500 p-4 mb-6">
    <h2 class="text-xl font-bold text-red-800 mb-2">Confirm Permanent Deletion</h2>
    <p class="text-red-700">You are about to delete <strong>{{ data["count"] }}</strong> todos.</p>
  </div>
  <ul class="bg-white rounded-lg shadow p-4 mb-6">
    {% for item in data["items"] %}
    <li class="py-2 border-b">{{ item["title"] }} <span class="text-gray-500">({{ item["status"] }})</span></li>
    {% else %}
    <li class="py-2 text-gray-500">Nothing to delete.</li>
    {% endfor %}
  </ul>
  <div class="flex gap-3 justify-end">
    <button {{ onAction({"actionId": "cancel"}) }} class="px-6 py-2 bg-gray-300 text-gray-700 rounded">Cancel</button>
    <button {{ onAction({"actionId": "confirm-delete"}) }} class="px-6 py-2 bg-red-600 text-white rounded font-semibold">Yes, Delete Permanently</button>
  </div>
</div>
{% endmacro %}"""


def _json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def build_render_prompt(args: RenderArgs) -> str:
    """Build the generation prompt for one render call; the same arguments give the same prompt."""
    actions = [action.model_dump(exclude_none=True) for action in args.actions]
    completed = (
        "\nTask Completed: true (This is the final completion UI - make it clear the task is done)"
        if args.task_completed
        else ""
    )
    metadata = f"\nMetadata:\n```json\n{_json(args.metadata)}\n```" if args.metadata else ""

    return f"""\
Generate a Jinja2 macro that renders an interactive HTML interface.

# Context

Main Goal: {args.main_goal}
Sub-Goal: {args.sub_goal}
Step Type: {args.step_type}{completed}{metadata}

# Data Structure

The macro receives `data` with this structure:
```
{args.data_structure_description.strip()}
```

Sample of the actual data:
```json
{_json(args.data)}
```

# Available Actions

```json
{_json(actions)}
```

# Requirements

Return exactly one macro with this signature and nothing else:

```jinja
{{% macro render(data, onAction) %}}
  ...
{{% endmacro %}}
```

- Output a single HTML fragment styled with Tailwind CSS utility classes, responsive and
  accessible (semantic HTML5, ARIA labels), handling empty and null data gracefully.
- Read data with subscripts (data["items"]); only `data` and `onAction` are available, there are
  no other globals.
- Bind each action button by writing `{{{{ onAction({{"actionId": "<id>"}}) }}}}` inside its
  opening tag; add a "payload" mapping when the choice carries values.
- No <script> tags, no javascript: URLs, no inline event handlers, no imports or includes.
- Use inline SVG for charts.

# Step Type Guidelines

{_STEP_GUIDELINES}

# Example (confirm step, bulk delete)

{_EXAMPLE}

# Output

Return ONLY the macro. No markdown, no explanations.
"""
