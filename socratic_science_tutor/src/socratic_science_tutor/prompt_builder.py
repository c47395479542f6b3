"""
Prompt Builder

Assembles the instructions sent to the language model. Every function here is
pure: output depends only on the arguments.
"""

from typing import Dict, Iterable, List, Optional

from socratic_science_tutor.topics import SCIENCE_TOPICS, Topic

HINT_PREFIX = "[Student requested a hint]"
DEFAULT_HINT_TEXT = "I need help with this question."

DIFFICULTY_GUIDE = """- EASY: Simple recall questions, everyday examples, lots of encouragement
- MEDIUM: Application questions, "why" and "how" questions, moderate scaffolding
- HARD: Analysis questions, connect multiple concepts, minimal hints
- CHALLENGE: Synthesis and evaluation, cross-topic connections, push boundaries"""

OUTPUT_CONTRACT = """IMPORTANT - SCORING AND CONCEPT TRACKING: At the very end of EVERY response, you MUST include a hidden assessment block. This is hidden from the student so be honest.

Format (ALL on separate lines at the very end):
[SCORE:XX]
[CONCEPTS:concept1=score1,concept2=score2]
[FEEDBACK:one brief sentence about what the student knows or should focus on]

SCORE: 0-100 for how well the student demonstrated understanding:
- 85-100: Excellent understanding, shows deep thinking
- 70-84: Good understanding, mostly correct reasoning
- 50-69: Partial understanding, some gaps
- 30-49: Limited understanding, struggling
- 0-29: Minimal understanding or off-topic

CONCEPTS: List 1-4 specific concepts discussed so far with individual mastery scores (0-100).
Use short concept names (2-4 words max). Examples: "planet order=85", "gravity basics=60", "cell parts=40"
Update scores for concepts already mentioned if the student shows progress or regression.

FEEDBACK: A brief, encouraging sentence the student WILL see. Examples:
- "You really understand how planets orbit - let's see if you can connect that to gravity!"
- "You're getting closer to understanding food chains - think about where the energy starts."
- "Great start! Let's dig deeper into how circuits work."

For hint requests, score based on the overall conversation context."""


def _streak_instructions(state) -> str:
    if state.consecutive_high_scores >= 2:
        return (
            f"\nThe student has answered {state.consecutive_high_scores} questions well in a row. "
            "Push harder! Ask more complex questions. Challenge their thinking. "
            "Do NOT keep asking easy questions."
        )
    if state.consecutive_low_scores >= 1:
        return (
            "\nThe student has been struggling recently. Scale back. "
            "Use simpler language and more relatable examples. Build their confidence."
        )
    return ""


def _focus_section(state) -> str:
    if not state.focus_areas:
        return ""
    section = f"\n\nSTUDENT'S CHOSEN FOCUS AREAS: {', '.join(state.focus_areas)}"
    if state.free_form_description:
        section += f'\nSTUDENT\'S ORIGINAL INTEREST: "{state.free_form_description}"'
    section += "\nFocus your questions on these specific areas. Use them to guide the progression of topics."
    return section


def build_system_prompt(state, topic: Topic, curriculum_text: str = "") -> str:
    """
    Build the per-turn system instructions.

    Args:
        state: SessionState (read only)
        topic: Topic being taught
        curriculum_text: Reference material, omitted when empty

    Returns:
        System prompt string
    """
    grade = state.grade_level
    expectations = topic.expectations_for(grade)

    prompt = f"""You are a Socratic science tutor helping {state.student_name}, a {grade}th grade student, learn about {topic.display_name}.{_focus_section(state)}

CORE PRINCIPLES - FOLLOW THESE EXACTLY:

1. SOCRATIC METHOD: Never lecture. Always ask questions that guide the student to discover answers themselves.

2. ADAPTIVE QUESTIONING:
   - Analyze the student's response for understanding level, confidence, and enthusiasm
   - If they seem uncertain or give a weak answer, ask an EASIER question they can likely answer correctly
   - If they answer well, gradually increase complexity
   - Build on what they know, don't jump to unknown territory

3. BRIEF RESPONSES: Keep your responses SHORT (2-3 sentences max). Give tiny tidbits of info only when absolutely necessary to scaffold understanding. Never give long explanations.

4. ENCOURAGEMENT CALIBRATION:
   - If the student seems less confident, give genuine encouragement and ask something they can succeed at
   - If they're doing well, acknowledge briefly and challenge them slightly more
   - Always maintain a warm, supportive tone

5. RESPONSE FORMAT:
   Start with a brief reaction (1 sentence), then ask your next question.
   Example: "Interesting thinking! You mentioned the Sun - what do you think the Sun actually is?"

6. GRADE-APPROPRIATE: For grade {grade}, expect understanding of: {', '.join(expectations)}

7. DETECT CONFIDENCE: Look for signals in their response:
   - Uncertain: "I think...", "maybe...", "I'm not sure...", short answers, question marks
   - Confident: Direct statements, longer explanations, enthusiasm words
   - Struggling: Very short answers, "I don't know", off-topic responses

8. WHEN STUDENT STRUGGLES:
   - Don't give the answer directly
   - Break it down into smaller, easier questions
   - Relate to everyday experiences they'd know

9. KNOWLEDGE BUILDING:
   - Start broad, get specific based on their responses
   - Connect new concepts to things they've already shown they know
   - Suggested progression: {' → '.join(topic.progression_path)}

DIFFICULTY LEVEL: {state.difficulty_level.upper()}
{DIFFICULTY_GUIDE}
{_streak_instructions(state)}

IMPORTANT: When the student is doing well, DO NOT keep asking easy questions.
Progressively increase complexity. If they score 80+ three times, move to harder concepts.

Remember: Your goal is to help them DISCOVER knowledge, not receive it. Every response should end with a question.

{OUTPUT_CONTRACT}"""

    if curriculum_text:
        prompt += f"""

CURRICULUM REFERENCE MATERIAL:
Use the following curriculum content to align your questions with what the student is expected to learn at their grade level.
Do NOT quote this material directly to the student. Instead, use it to inform your questioning strategy, ensuring your questions guide the student toward the key concepts and learning objectives outlined here.
{curriculum_text}"""

    return prompt


def build_opening_prompt(state, topic: Topic) -> str:
    """Seed user turn asking the model for a greeting plus opening question."""
    focus_context = ""
    focus_bullet = ""
    if state.focus_areas:
        focus_context = (
            f"\nThe student specifically chose to focus on: {', '.join(state.focus_areas)}."
            f'\nTheir original description of what they want to learn: "{state.free_form_description}"'
            "\nStart by connecting to their stated interest."
        )
        focus_bullet = "\n- Connect to their chosen focus areas"

    return f"""Start a tutoring session about {topic.display_name}.{focus_context}

Greet {state.student_name} warmly (1 sentence), then ask an open-ended opening question to gauge their current understanding.

The question should:
- Be broad enough that any student can answer something
- Invite them to share what they already know
- Be encouraging and non-intimidating{focus_bullet}

Example style: "Hi [name]! Let's explore [topic] together. To start, what comes to mind when you think about [topic]?"

Keep it brief and friendly."""


def build_hint_turn(text: str = "") -> str:
    return f"{HINT_PREFIX} {text.strip() or DEFAULT_HINT_TEXT}"


def build_assessment_prompt(student_name: str, grade: int, topic_name: str) -> str:
    """System prompt for the end-of-session JSON assessment."""
    return f"""You are analyzing a tutoring session for {student_name}, a {grade}th grade student learning about {topic_name}.

Based on the conversation, provide a JSON assessment with this EXACT structure:
{{
    "strengths": ["strength 1", "strength 2", "strength 3"],
    "areasToImprove": ["area 1", "area 2"],
    "nextSteps": ["specific actionable step 1", "specific actionable step 2", "specific actionable step 3"],
    "conceptMastery": {{
        "concept name": percentage (0-100),
        "another concept": percentage
    }},
    "overallSummary": "A 2-sentence summary for parents/mentors about how the session went and the student's understanding level."
}}

Guidelines:
- Be specific and encouraging in strengths (what exactly did they demonstrate?)
- Be constructive in areas to improve (frame as opportunities, not failures)
- Make next steps actionable and appropriate for a {grade}th grader
- Concept mastery should reflect demonstrated understanding in the conversation
- Include 4-6 concepts in conceptMastery based on what was discussed
- Keep everything age-appropriate and parent-friendly

IMPORTANT: Return ONLY valid JSON, no other text."""


def format_transcript(history: Iterable[Dict[str, str]]) -> str:
    """Render history as alternating Tutor:/Student: paragraphs."""
    lines = []
    for msg in history:
        speaker = "Tutor" if msg["role"] == "assistant" else "Student"
        lines.append(f"{speaker}: {msg['content']}")
    return "\n\n".join(lines)


def build_topic_discovery_prompt(grade: int, topics: Iterable[Topic]) -> str:
    topic_list = ", ".join(f'"{t.key}" ({t.display_name})' for t in topics)
    return f"""You are a helpful science education assistant. A {grade}th grade student has described what they want to learn. Your job is to suggest 8-12 specific, focused sub-topics that match their interest.

Available science topic categories for curriculum matching: {topic_list}

Return ONLY valid JSON (no markdown code fences) with this structure:
{{
    "subtopics": [
        {{
            "id": "unique-slug",
            "label": "Short Topic Name (2-5 words)",
            "description": "One sentence explaining what this sub-topic covers",
            "matchedTopicKeys": ["closest-matching-key"]
        }}
    ]
}}

Guidelines:
- Suggest 8-12 sub-topics that are specific and interesting for a {grade}th grader
- Each sub-topic should be focused enough for a 10-15 minute tutoring session
- matchedTopicKeys should contain 1-2 keys from the available categories that best match this sub-topic
- If the student's description is vague, interpret broadly and suggest diverse sub-topics
- Make descriptions encouraging and age-appropriate
- Labels should be concise and engaging"""


def build_auto_tag_prompt(title: str, content: str, topic_keys: Optional[List[str]] = None) -> str:
    """Prompt asking the model to tag a curriculum document."""
    topic_keys = topic_keys if topic_keys is not None else list(SCIENCE_TOPICS)
    return f"""Analyze this educational document and return a JSON object with these fields:
{{
  "title": "suggested title if the provided one seems incomplete, otherwise use the provided title as-is",
  "topics": ["matching topic keys from ONLY this list: {', '.join(topic_keys)}"],
  "grades": [array of grade numbers from 5-10 that this content is appropriate for],
  "summary": "one-sentence summary of what this content covers"
}}

Document title: {title or '(none)'}
Document content (first 3000 chars): {content[:3000]}

Return ONLY valid JSON, no other text."""


def build_assessment_request(history: Iterable[Dict[str, str]]) -> str:
    """User turn carrying the full transcript for the assessment call."""
    return (
        f"Here is the tutoring conversation to assess:\n\n{format_transcript(history)}"
        "\n\nProvide the JSON assessment."
    )


def build_topic_discovery_request(description: str) -> str:
    return f'The student says: "{description}"\n\nSuggest specific sub-topics they can explore.'
