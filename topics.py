# topics.py
import random

# Static pool for auto-matched Global GD rooms. A topic is drawn when the
# group is formed so every member of a room shares it.
GLOBAL_GD_TOPICS = (
    "The impact of artificial intelligence on employment",
    "Social media regulation and freedom of speech",
    "Climate change and individual responsibility",
    "Remote work vs office culture",
    "Is social media doing more harm than good?",
    "The future of online education",
    "Data privacy in a connected world",
)


def pick_topic(rng: random.Random = None) -> str:
    return (rng or random).choice(GLOBAL_GD_TOPICS)
