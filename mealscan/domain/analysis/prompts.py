"""
Prompts for nutrition estimation.

IMPORTANT: System prompts are cacheable by OpenAI.
Keep static instructions in SYSTEM_PROMPT and the per-image request in
the user message.
"""

from typing import Any, Dict, List


# ═══════════════════════════════════════════════════════════
# SYSTEM PROMPT (Cacheable - static instructions)
# ═══════════════════════════════════════════════════════════

NUTRITION_SYSTEM_PROMPT = (
    "You are a nutritional analysis AI. Analyze the food in the image and "
    "provide detailed nutritional information in JSON format. Include: name, "
    "calories, protein (g), carbs (g), fat (g), fiber (g), and sugar (g). "
    "Be specific about the food item. If you cannot clearly identify the food, "
    "make your best educated guess based on visual appearance."
)


# ═══════════════════════════════════════════════════════════
# USER INSTRUCTIONS (sent with every inference request)
# ═══════════════════════════════════════════════════════════

REQUIRED_FIELDS = ("name", "calories", "protein", "carbs", "fat", "fiber", "sugar")

NUTRITION_INSTRUCTIONS = (
    "Analyze this food and provide nutritional information in the format: "
    '{"name": "Food name", "calories": X, "protein": X, "carbs": X, '
    '"fat": X, "fiber": X, "sugar": X}'
)


def build_vision_messages(image_base64: str, instructions: str) -> List[Dict[str, Any]]:
    """
    Build chat messages for a vision completion.

    Args:
        image_base64: JPEG payload without data URL prefix
        instructions: User instruction text

    Returns:
        Messages list (system + user with image part)
    """
    return [
        {"role": "system", "content": NUTRITION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": instructions},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"},
                },
            ],
        },
    ]
