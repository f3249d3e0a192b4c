from html import escape

from goalcoach.models import Persona, Plan

DIFFICULTY_LABELS = {
    "easy": "Easy",
    "medium": "Medium",
    "hard": "Hard",
}


def render_plan_html(plan: Plan, persona: Persona) -> str:
    """Presentation markup for a plan, styled with the persona's colour.

    Generated on demand from the structured plan; never stored.
    """
    steps_html = []
    for number, step in enumerate(plan.steps, start=1):
        done = " plan-step--done" if step.completed else ""
        steps_html.append(
            f'<li class="plan-step{done}" data-step-id="{escape(step.id)}">'
            f"<h3>{number}. {escape(step.title)}</h3>"
            f"<p>{escape(step.description)}</p>"
            f'<span class="plan-step__meta">{step.estimated_days} days &middot; '
            f"{DIFFICULTY_LABELS[step.difficulty.value]}</span>"
            "</li>"
        )

    return (
        f'<section class="plan" style="border-color: {persona.color}">'
        f'<header><h2 style="color: {persona.color}">{escape(plan.title)}</h2>'
        f"<p>{escape(plan.description)}</p>"
        f'<p class="plan__summary">{plan.total_duration} days &middot; '
        f"Feasibility {plan.feasibility_score}% &middot; Coached by {persona.value}</p></header>"
        f'<ol class="plan__steps">{"".join(steps_html)}</ol>'
        "</section>"
    )
