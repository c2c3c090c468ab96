from typing import Sequence

from models import Issue, Location

EMPTY_SUMMARY = "No issues have been marked as resolved yet. Check back soon!"


def build_status_prompt(issue: Issue | None, issue_id: str, location: Location | None = None) -> str:
    """Build the instruction for a complaint status reply.

    `location` is accepted but never written into the text; the caller sends it
    with the model call as a location-bias hint instead.
    """
    if issue is None:
        return (
            "You are a friendly and helpful city service chatbot. "
            f'A citizen is asking for the status of their complaint with ID "{issue_id}", '
            "but this ID was not found in our system. "
            "Please provide a polite response informing them that the complaint ID is invalid. "
            "Ask them to double-check the ID and try again. "
            "Suggest they can report a new issue if they can't find their ID."
        )

    return (
        "You are a friendly and helpful city service chatbot. "
        f'A citizen is asking for the status of their complaint with ID "{issue_id}". '
        f'The complaint is about "{issue.title}" at location '
        f"(lat: {issue.location.lat}, lon: {issue.location.lon}) "
        f'and its current status is "{issue.status.value}". '
        "Please provide a helpful and reassuring response. "
        "If the status is 'Pending', mention it has been received and is in the queue. "
        "If 'In Progress', say that our team is actively working on it. "
        "If 'Resolved', thank them for their patience and confirm the issue is fixed. "
        "Keep the response concise and positive. "
        "If possible, mention nearby landmarks or areas to give the user more context "
        "about the location of the issue."
    )


def build_summary_prompt(issues: Sequence[Issue]) -> str:
    if not issues:
        return EMPTY_SUMMARY

    lines = ["You are a helpful city service AI. Here is a list of recently resolved civic issues and their locations:"]
    for issue in issues:
        lines.append(f" - {issue.title} at (lat: {issue.location.lat}, lon: {issue.location.lon})")
    lines.append("")
    lines.append(
        "Please provide a short, engaging summary for the public dashboard, mentioning the general "
        "areas or neighborhoods where these issues were fixed. Be positive and community-focused. "
        "Do not list every single issue, but give a high-level overview. For example, 'Our teams "
        "were busy this week! We've resolved several issues, including pothole repairs in the "
        "downtown core and clearing garbage from the beautiful riverside park.'"
    )
    return "\n".join(lines)
