def match_system_prompt() -> str:
    return (
        "You are an experienced technical recruiter. Return only what is asked for. "
        "No markdown, no extra text. Use the candidate's evidence; do not hallucinate."
    )


def _pair_block(*, subject_text: str, requirement_text: str) -> str:
    return (
        "Job requirements:\n"
        "-----\n"
        f"{requirement_text or ''}\n"
        "-----\n\n"
        "Candidate skills and experience:\n"
        "-----\n"
        f"{subject_text or ''}\n"
        "-----\n"
    )


def match_score_user_prompt(*, subject_text: str, requirement_text: str) -> str:
    return (
        "Rate how well this candidate matches the job requirements.\n\n"
        'Return JSON in this exact shape: {"score": 0-100}\n\n'
        "Rules:\n"
        "- score is a single integer from 0 to 100.\n"
        "- 90+ only when nearly every requirement is clearly covered.\n"
        "- Below 40 when most core requirements are missing.\n\n"
        f"{_pair_block(subject_text=subject_text, requirement_text=requirement_text)}"
    )


def match_feedback_user_prompt(*, subject_text: str, requirement_text: str, score: int) -> str:
    return (
        f"A candidate was scored {int(score)}/100 against a job.\n"
        "Explain the score for a hiring manager.\n\n"
        "Return JSON in this exact shape:\n"
        "{\n"
        '  "text": string,\n'
        '  "details": string\n'
        "}\n\n"
        "Rules:\n"
        "- text is one short sentence summarizing the fit.\n"
        "- details is one paragraph (3-5 sentences) on strengths and gaps.\n"
        "- Stay consistent with the given score.\n\n"
        f"{_pair_block(subject_text=subject_text, requirement_text=requirement_text)}"
    )


def interview_questions_user_prompt(*, subject_text: str, requirement_text: str, score: int) -> str:
    return (
        f"A candidate was scored {int(score)}/100 against a job.\n"
        "Write exactly 3 interview questions that explore the most important strengths "
        "and gaps for this role.\n\n"
        "Return a JSON array in this exact shape:\n"
        "[\n"
        '  {"question": string, "rationale": string}\n'
        "]\n\n"
        "Rules:\n"
        "- exactly 3 items.\n"
        "- rationale is one short sentence on what the question assesses.\n"
        "- Reference concrete skills from the texts.\n\n"
        f"{_pair_block(subject_text=subject_text, requirement_text=requirement_text)}"
    )
