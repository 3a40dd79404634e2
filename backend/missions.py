# Version History
# v1.0 - Daily kindness missions, picked deterministically from the day of year.

from __future__ import annotations

from datetime import date

MISSIONS = [
    "Send a message to someone you haven't talked to in a while.",
    "Leave a kind note for a coworker or classmate.",
    "Hold the door open for the next three people behind you.",
    "Compliment a stranger on something they chose, not how they look.",
    "Thank a service worker by name.",
    "Pick up a piece of litter you would normally walk past.",
    "Let someone go ahead of you in line.",
    "Write a positive review for a small local business.",
    "Call a family member just to ask how they are doing.",
    "Share a skill you have with someone who wants to learn it.",
    "Donate an item you no longer use.",
    "Listen to someone without checking your phone.",
    "Cook or buy a snack for someone who has had a long day.",
    "Tell a teacher or mentor what they taught you.",
    "Water a plant or tend a shared space in your building.",
    "Offer to help a neighbour with a small chore.",
    "Say something encouraging to someone who is learning.",
    "Leave a generous tip and a thank-you note.",
    "Introduce two people who would enjoy knowing each other.",
    "Forgive a small annoyance and let it go for the day.",
    "Send a photo of a good memory to a friend who shares it.",
]


def mission_for_day(day: date | None = None) -> tuple[str, int]:
    day = day or date.today()
    index = day.timetuple().tm_yday % len(MISSIONS)
    return MISSIONS[index], index
