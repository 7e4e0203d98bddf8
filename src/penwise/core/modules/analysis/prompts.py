SENTIMENT_SYSTEM_PROMPT = "You are an assistant that performs sentiment analysis."

ENTRY_SYSTEM_PROMPT = "You are an assistant that generates journaling titles, summaries, categories, and tags."

CATEGORIES = ("Personal", "Work", "Travel", "Health", "Relationships", "Miscellaneous")


def build_sentiment_prompt(text: str) -> str:
    return (
        "Analyze the sentiment of the following text and return only a JSON object with the fields:\n"
        '- "score": integer from -5 (very negative) to 5 (very positive)\n'
        '- "comparative": number from -1 to 1, the score normalized by text length\n'
        '- "positive": list of words that carry positive sentiment\n'
        '- "negative": list of words that carry negative sentiment\n\n'
        f"Text: {text}"
    )


def build_entry_analysis_prompt(text: str) -> str:
    return (
        "Analyze the following journal entry and suggest a short descriptive title, a summary of the content, "
        f"categories ({', '.join(CATEGORIES)}), and relevant tags. "
        "Output only the result in the following JSON format:\n\n"
        '{"title": "title", "summary": "summary", "categories": ["category1"], "tags": ["tag1"]}\n\n'
        f"Entry: {text}"
    )
