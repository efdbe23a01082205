"""
Prompt builders for the content and optimization endpoints.
"""

from __future__ import annotations

from typing import Any

LENGTH_GUIDES = {
    "short": "2-3 sentences",
    "medium": "1-2 paragraphs",
    "long": "3-5 paragraphs",
}

CONTENT_TYPE_LABELS = {
    "social_media_post": "a social media post",
    "blog_post": "a blog post",
    "email": "an email",
    "ad_copy": "an advertisement copy",
    "song_description": "a song description",
}


def _bullets(lines: list[str]) -> str:
    return "".join(f"- {line}\n" for line in lines if line)


def content_system_prompt() -> str:
    return "You are a professional content creator with expertise in music marketing and promotion."


def content_user_prompt(
    *,
    content_type: str,
    topic: str,
    tone: str,
    target_audience: str,
    keywords: list[str],
    length: str,
    language: str,
    brand_voice: str,
    call_to_action: str | None,
) -> str:
    requirements = [
        f"Tone: {tone}",
        f"Target audience: {target_audience}",
        f"Length: {LENGTH_GUIDES[length]}",
        f"Language: {language}",
        f"Brand voice: {brand_voice}",
    ]
    if keywords:
        requirements.append(f"Include these keywords: {', '.join(keywords)}")
    if call_to_action:
        requirements.append(f"Include a call to action: {call_to_action}")
    return (
        f"Create {CONTENT_TYPE_LABELS.get(content_type, 'content')} about \"{topic}\".\n\n"
        "Requirements:\n"
        f"{_bullets(requirements)}\n"
        "Make the content engaging, original, and tailored to the specified requirements."
    )


def optimize_system_prompt() -> str:
    return "You are a professional content optimizer with expertise in SEO and engagement."


def optimize_user_prompt(
    content: str,
    *,
    target_keywords: list[str],
    seo_focus: bool,
    readability: bool,
    engagement: bool,
    character_limit: int | None,
) -> str:
    requirements = []
    if target_keywords:
        requirements.append(f"Target keywords: {', '.join(target_keywords)}")
    if seo_focus:
        requirements.append("Improve SEO optimization")
    if readability:
        requirements.append("Enhance readability")
    if engagement:
        requirements.append("Increase engagement")
    if character_limit:
        requirements.append(f"Keep it under {character_limit} characters")
    return (
        "Optimize the following content based on the given requirements:\n\n"
        f"{content}\n\n"
        "Optimization requirements:\n"
        f"{_bullets(requirements)}\n"
        "Provide the optimized content, a score from 1-10, and specific suggestions for improvement. "
        "Format your response as follows:\n\n"
        "OPTIMIZED CONTENT:\n[The optimized content here]\n\n"
        "SCORE: [score]/10\n\n"
        "SUGGESTIONS:\n- [Suggestion 1]\n- [Suggestion 2]\n..."
    )


def variations_system_prompt() -> str:
    return "You are a creative content generator that creates variations of the provided content."


def variations_user_prompt(content: str, *, count: int, tone: str | None, style: str | None, length: str) -> str:
    requirements = []
    if tone:
        requirements.append(f"Tone: {tone}")
    if style:
        requirements.append(f"Style: {style}")
    if length == "shorter":
        requirements.append("Make it more concise.")
    elif length == "longer":
        requirements.append("Expand on the content with more details.")
    requirement_block = _bullets(requirements) or "- Keep the original tone and length\n"
    return (
        f"Create {count} distinct variations of the following content. "
        "Each variation should maintain the core message but present it differently.\n\n"
        f"Original content:\n{content}\n\n"
        "Requirements for variations:\n"
        f"{requirement_block}\n"
        "Format your response as a numbered list (1., 2., ...) with one variation per item."
    )


def hashtags_system_prompt() -> str:
    return "You are a social media expert that generates relevant hashtags."


def hashtags_user_prompt(content: str, *, platform: str, count: int) -> str:
    target = "social media" if platform == "all" else platform
    return (
        f"Generate {count} relevant hashtags for the following content, optimized for {target}:\n\n"
        f"{content}\n\n"
        "Return only the hashtags separated by commas, each starting with #."
    )


def video_script_system_prompt() -> str:
    return "You are a professional video scriptwriter with expertise in creating engaging video content."


def video_script_user_prompt(content: str, *, duration: int, style: str, include_visuals: bool) -> str:
    visuals = (
        "Include detailed visual descriptions for each scene."
        if include_visuals
        else "Focus on the script and narration."
    )
    return (
        f"Create a video script based on the following content. The video should be approximately "
        f"{duration} seconds long and follow a {style} style.\n\n"
        f"Content:\n{content}\n\n"
        "Format your response as follows:\n\n"
        "SCRIPT OVERVIEW:\n[A brief summary of the video script]\n\n"
        "SCENES:\n"
        "1. [Scene 1 description]\n"
        "   - Visual: [Description of visuals for scene 1]\n"
        "   - Duration: [duration in seconds]s\n"
        "   - Narration: [Narration text for scene 1]\n"
        "2. [Scene 2 description]\n"
        "   - Visual: [Description of visuals for scene 2]\n"
        "   - Duration: [duration in seconds]s\n"
        "   - Narration: [Narration text for scene 2]\n"
        "... and so on for all scenes.\n\n"
        f"Total duration: {duration} seconds\n"
        f"{visuals}"
    )


def analysis_system_prompt() -> str:
    return (
        "You are an expert email marketer who analyzes content for marketing effectiveness. "
        "Provide clear, actionable feedback."
    )


def analysis_user_prompt(content: str) -> str:
    return (
        "Analyze the following content for email marketing purposes. "
        "Provide a detailed analysis with these specific sections:\n"
        "1. Readability Score: A number between 1-100 (higher is better)\n"
        "2. Sentiment: One of: positive, neutral, or negative\n"
        "3. Top 5 Keywords: Comma-separated list of the most important keywords\n"
        "4. Suggestions for Improvement: 3-5 specific, actionable suggestions to improve the content\n\n"
        f"Content to analyze:\n{content}\n\n"
        "Please format your response clearly with section headers."
    )


def subject_lines_system_prompt(*, max_length: int, include_emojis: bool) -> str:
    emojis = "Include 1-2 relevant emojis when appropriate" if include_emojis else "Do not use emojis"
    return (
        "You are an expert email marketer who creates high-converting subject lines.\n"
        f"- Keep subject lines under {max_length} characters\n"
        "- Use title case\n"
        f"- {emojis}\n"
        "- Make them attention-grabbing and relevant to the content\n"
        "- Avoid spammy words and all caps\n"
        "- Vary the approaches (questions, statements, curiosity gaps, etc.)"
    )


def subject_lines_user_prompt(content: str, *, count: int, tone: str, max_length: int, include_emojis: bool) -> str:
    return (
        f"Generate {count} engaging email subject lines for the following content.\n"
        f"Tone: {tone}\n"
        f"Max length: {max_length} characters\n"
        f"Include emojis: {'Yes' if include_emojis else 'No'}\n\n"
        f"Content:\n{content}\n\n"
        "For each subject line, provide a score from 1-10 on how likely it is to get the email opened.\n"
        "Return a JSON object: {\"variations\": [{\"subject\": \"...\", \"score\": 8}]}."
    )


def personalize_system_prompt(*, merge_tags: bool) -> str:
    tags = (
        "Use double curly braces for merge tags (e.g., {{firstName}})"
        if merge_tags
        else "Replace all placeholders with actual values"
    )
    return (
        "You are an expert at personalizing email content to increase engagement.\n"
        "- Maintain the original tone and style\n"
        "- Only personalize where it feels natural\n"
        f"- {tags}\n"
        "- Keep formatting consistent with the original\n"
        "- Return a valid JSON object with \"content\" and \"personalizations\""
    )


def personalize_user_prompt(content: str, user_data: dict[str, Any], *, merge_tags: bool) -> str:
    data_lines = "\n".join(f"- {key}: {value}" for key, value in user_data.items())
    tags = (
        "Use merge tags like {{firstName}} for dynamic fields"
        if merge_tags
        else "Replace all placeholders with actual values"
    )
    return (
        "Personalize the following email content for a user with these characteristics:\n\n"
        f"User data:\n{data_lines}\n\n"
        f"Email content to personalize:\n{content}\n\n"
        "Guidelines:\n"
        "1. Keep the same tone and formatting as the original\n"
        "2. Only personalize where it makes natural sense\n"
        f"3. {tags}\n"
        "4. Return a JSON object with \"content\" and \"personalizations\" array\n"
        "5. List all personalizations made in the \"personalizations\" array"
    )
