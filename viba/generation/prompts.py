"""Fixed instructions sent to the generation service."""

from enum import Enum
from typing import Optional


class SkinTone(str, Enum):
    WHITE = "White"
    EAST_ASIAN = "East Asian"
    LATINO = "Latino"
    BLACK = "Black"
    SOUTH_ASIAN = "South Asian"
    LIGHT = "Light"
    MEDIUM = "Medium"
    DARK = "Dark"


DESCRIBE_PROMPT = """# Role
You are a visual content analyst. You turn images into precise, structured,
spatially aware text so that a reader could rebuild the picture from the
words alone.

# Task
Analyse the uploaded image in depth. Do not summarise; break it down along
the four dimensions below.

# Analysis Guidelines
1. **Visual Content**
   - Overall image type (photo, illustration, chart, UI screenshot).
   - Visible objects, environment, colour palette, lighting (direction,
     contrast) and texture. Use concrete visual terms, not vague adjectives.

2. **Main Subject**
   - The visual focus (person, object or region) and its appearance:
     clothing, expression, pose, colour, shape.
   - What makes it the subject (composition, focus, light).

3. **Spatial Layout & Relative Positions**
   - Precise placement: foreground / midground / background, quadrants,
     off-centre positions.
   - Distances, overlap and depth between elements.

4. **Interrelationships & Interactions**
   - Contact, gaze and gesture between the subject and its surroundings.
   - The story or mood the arrangement conveys.

# Output Format
Markdown, one heading per dimension above, in that order.

# Constraints
- Transcribe any visible text and say where it is.
- Do not speculate beyond the frame.
- Describe blurry or ambiguous details as such; never invent detail."""


AVATAR_PROMPT = """Create a high-quality, professional character image based on these reference photos.
The style should be clean, with a gray-white background and studio-level natural lighting.
The character's makeup, facial features, body shape, skin tone, hairstyle, and hair color must be consistent with the original images, without any changes.
The character wears a white tight yoga outfit.
Subject centered."""

TRY_ON_PROMPT = (
    "Generate a realistic image of the person from the first image wearing the clothing "
    "from the second image. Ensure the clothing is exactly consistent with the original, "
    "while maintaining natural fit, matching the model's pose, lighting, and body shape. "
    "The garment silhouette, fabric, and structure must not be altered."
)

SWAP_PROMPT = (
    "Compose the person from the first image into the scene provided by the second image. "
    "Harmonize lighting, shadows, and color tones so that the character appears to naturally "
    "belong in the environment. Keep the pose of the person in the second image unchanged, "
    "and choose a full-body or suitable composition according to the scene."
)

SYSTEM_INSTRUCTION = "Image aspect ratio 3:4"


def derivation_prompt(description: str, intensity: int, skin_tone: Optional[SkinTone] = None) -> str:
    prompt = (
        f'Generate a creative variant based on the following description: "{description}".\n'
        f"Creativity level: {intensity}/10.\n"
        "CRITICAL: You MUST preserve the visual style, color grading, lighting atmosphere, and "
        "filter effects described. The generated image should look like it belongs to the same "
        "photography series or uses the same filter/preset as the original description.\n"
    )
    if skin_tone:
        tone = skin_tone.value if isinstance(skin_tone, SkinTone) else skin_tone
        prompt += (
            f"IMPORTANT: The subject in the image must have a {tone} skin tone. Ensure this skin "
            "tone is applied naturally. Keep all other features such as hair style, facial "
            "structure, clothing, and pose consistent with the original description, only "
            "modifying the skin tone.\n"
        )
    prompt += "Maintain the artistic style strictly. Return only the image."
    return prompt


def catalog() -> list:
    """Prompts grouped by generation type, with the model feature each step uses."""
    return [
        {
            "type": "derivation",
            "steps": [
                {
                    "feature": "derivation_text",
                    "description": "Step 1: Image analysis (image-to-text)",
                    "prompt": DESCRIBE_PROMPT,
                },
                {
                    "feature": "derivation_image",
                    "description": "Step 2: Variant generation (text-to-image)",
                    "prompt": derivation_prompt("[Image description from step 1]", 5),
                },
            ],
        },
        {"type": "avatar", "steps": [{"feature": "avatar", "prompt": AVATAR_PROMPT}]},
        {"type": "try_on", "steps": [{"feature": "try_on", "prompt": TRY_ON_PROMPT}]},
        {"type": "swap", "steps": [{"feature": "swap", "prompt": SWAP_PROMPT}]},
    ]
