from __future__ import annotations

from bookmark_analyzer.enrichment.service import EnrichedContent
from bookmark_analyzer.models import Category, ContentKind
from bookmark_analyzer.utils import collapse_ws, truncate


MAX_CONTEXT_CHARS = 6000

_KIND_FRAMING = {
    ContentKind.VIDEO: "The content is a video. Judge it from its title and description; do not invent scenes.",
    ContentKind.SOCIAL_POST: "The content is a short social media post. Keep the summary to one sentence.",
    ContentKind.CODE_REPOSITORY: (
        "The content is a source code repository. Focus on what the project does, "
        "its language and who would use it."
    ),
    ContentKind.GENERAL: "The content is a web page.",
}

_CATEGORY_LIST = ", ".join(c.value for c in Category)


def build_prompt(content: EnrichedContent) -> str:
    context = truncate(collapse_ws(content.context), MAX_CONTEXT_CHARS)
    framing = _KIND_FRAMING.get(content.kind, _KIND_FRAMING[ContentKind.GENERAL])
    return f"""You are an advanced tool for analysing web content. Analyse the content below carefully.
{framing}

CONTENT TO ANALYSE:
\"\"\"
{context}
\"\"\"

TASK:
Extract the following:
1. A concise summary (1-2 sentences) capturing the essence of the content
2. The main topic (a single phrase)
3. Key points (the 3-5 most important pieces of information)
4. Categories (choose 1-4 of: {_CATEGORY_LIST})
5. Sentiment (positive, negative or neutral)
6. Suggested tags (5-7 short lowercase keywords)
7. Content value (high, medium or low)
8. A suggested folder for organising this bookmark
9. Your confidence in this analysis (a number from 0.0 to 1.0)

RESPONSE FORMAT:
Put your reasoning inside <think>...</think>, then return the answer as a valid JSON object in a fenced block:

<think>
Describe how you are analysing the content...
</think>

```json
{{
  "summary": "concise summary",
  "mainTopic": "main topic",
  "keyPoints": ["point 1", "point 2", "point 3"],
  "categories": ["category1", "category2"],
  "sentiment": "positive|negative|neutral",
  "contentValue": "high|medium|low",
  "suggestedTags": ["tag1", "tag2", "tag3", "tag4", "tag5"],
  "suggestedFolder": "folder name",
  "confidence": 0.85
}}
```
"""
