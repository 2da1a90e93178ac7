from . import schemas

MAX_SUGGESTED_TAGS = 5
FALLBACK_CONFIDENCE = 0.5
DEFAULT_TAGS = ["Other", "Social", "Academic"]

_KEYWORD_TAGS: dict[str, list[str]] = {
    "study": ["Study", "Academic", "Study Group"],
    "group": ["Study Group", "Social", "Club"],
    "meeting": ["Club", "RSO", "Leadership", "Networking"],
    "computer": ["Computer Science", "Engineering", "Academic"],
    "engineering": ["Engineering", "Academic", "Undergraduate"],
    "food": ["Food", "Free", "Social"],
    "free": ["Free", "Social", "Pizza"],
    "pizza": ["Pizza", "Food", "Free", "Social"],
    "career": ["Career", "Networking", "Professional"],
    "internship": ["Internship", "Career", "Professional"],
    "volunteer": ["Volunteer", "Community", "Social"],
    "music": ["Music", "Cultural", "Entertainment"],
    "dance": ["Dance", "Cultural", "Social"],
    "game": ["Games", "Social", "Entertainment"],
    "graduate": ["Graduate", "Academic", "Professional"],
    "undergraduate": ["Undergraduate", "Academic", "Social"],
    "coffee": ["Coffee", "Social", "Free"],
    "networking": ["Networking", "Professional", "Career"],
    "leadership": ["Leadership", "Professional", "Club"],
    "cultural": ["Cultural", "Social", "Diversity"],
    "sport": ["Sports", "Recreation", "Social"],
    "recreation": ["Recreation", "Sports", "Social"],
    "tutorial": ["Academic", "Study", "Learning"],
    "workshop": ["Academic", "Professional", "Learning"],
    "seminar": ["Academic", "Professional", "Networking"],
}


def suggest_tags_from_text(text: str) -> list[str]:
    lowered = (text or "").lower()
    suggested: dict[str, None] = {}
    for keyword, tags in _KEYWORD_TAGS.items():
        if keyword in lowered:
            for tag in tags:
                suggested.setdefault(tag, None)
    if not suggested:
        return list(DEFAULT_TAGS)
    return list(suggested)[:MAX_SUGGESTED_TAGS]


def rule_based_tags(title: str, description: str) -> schemas.TagEventResponse:
    tags = suggest_tags_from_text(f"{title} {description}")
    return schemas.TagEventResponse(
        tags=tags,
        confidence_scores={tag: FALLBACK_CONFIDENCE for tag in tags},
        source="rules",
    )
