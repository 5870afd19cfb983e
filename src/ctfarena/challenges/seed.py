"""Challenge catalog seed data. Simulations are static fixtures matched by string."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.challenges.kinds import ChallengeKind, Difficulty
from ctfarena.db.models import Challenge

logger = logging.getLogger(__name__)

CHALLENGE_SEED_DATA: list[dict] = [
    {
        "title": "Basic Shell Challenge",
        "description": "Write a shell command to list all files in the current directory.",
        "difficulty": "easy",
        "kind": "shell",
        "points": 10,
        "initial_code": "",
        "hints": ["Use the ls command."],
        "solution": "ls",
    },
    {
        "title": "Python Sum Function",
        "description": "Write a Python function that returns the sum of two numbers.",
        "difficulty": "easy",
        "kind": "python",
        "points": 15,
        "initial_code": "def sum_two_numbers(a, b):\n    # Your code here\n    pass",
        "hints": ["Use the + operator."],
        "solution": "def sum_two_numbers(a, b):\n    return a + b",
    },
    {
        "title": "C Hello World",
        "description": "Write a C program that prints 'Hello, World!' to the console.",
        "difficulty": "easy",
        "kind": "c",
        "points": 20,
        "initial_code": "#include <stdio.h>\n\nint main() {\n    // Your code here\n    return 0;\n}",
        "hints": ["Use the printf function."],
        "solution": '#include <stdio.h>\n\nint main() {\n    printf("Hello, World!\\n");\n    return 0;\n}',
    },
    {
        "title": "Packet Capture Analysis",
        "description": "A capture shows a plaintext login over HTTP. Recover the password that was sent.",
        "difficulty": "medium",
        "kind": "network",
        "points": 25,
        "initial_code": "",
        "hints": [
            "Filter the capture on HTTP POST requests.",
            "Look at the form body of the request to /login.",
        ],
        "solution": "hunter2",
    },
    {
        "title": "Binary Diff",
        "description": "Two builds of the same binary differ by one patched comparison. Give the patched offset in hex.",
        "difficulty": "medium",
        "kind": "binary",
        "points": 30,
        "initial_code": "",
        "hints": ["Compare the two hexdumps line by line.", "The offset is printed with a 0x prefix."],
        "solution": "0x4f2",
    },
    {
        "title": "Login Bypass",
        "description": "The login form concatenates input straight into SQL. Enter a username that logs in as admin.",
        "difficulty": "hard",
        "kind": "web",
        "points": 40,
        "initial_code": "",
        "hints": ["Close the string literal and comment out the rest of the query."],
        "solution": "admin' --",
    },
    {
        "title": "Caesar Note",
        "description": "Decode 'FDSWXUH WKH IODJ' (shift of three).",
        "difficulty": "hard",
        "kind": "generic",
        "points": 35,
        "initial_code": "",
        "hints": ["Shift every letter back by three."],
        "solution": "capture the flag",
    },
]


async def seed_challenges(db: AsyncSession) -> int:
    """Insert any seed challenges missing by title. Returns the number inserted."""
    result = await db.execute(select(Challenge.title))
    existing = set(result.scalars().all())

    inserted = 0
    for data in CHALLENGE_SEED_DATA:
        if data["title"] in existing:
            continue
        db.add(Challenge(
            title=data["title"],
            description=data["description"],
            difficulty=Difficulty(data["difficulty"]).value,
            kind=ChallengeKind.resolve(data["kind"]).value,
            points=data["points"],
            initial_code=data["initial_code"],
            hints=list(data["hints"]),
            solution=data["solution"],
        ))
        inserted += 1

    await db.commit()
    if inserted:
        logger.info("Seeded %d challenges", inserted)
    return inserted
