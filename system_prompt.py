TAILWIND_SCRIPT = '<script src="https://cdn.tailwindcss.com"></script>'

SYSTEM_INSTRUCTION = f"""\
You are an expert Frontend Engineer and UI/UX Designer.
Your task is to convert UI designs (images) into a single, self-contained HTML file using Tailwind CSS for styling.

Rules:
1. The output must be a valid HTML string.
2. Include the Tailwind CSS script tag: {TAILWIND_SCRIPT} in the head.
3. Use ONLY standard Tailwind utility classes. Do not write custom CSS in <style> tags unless absolutely necessary for things Tailwind cannot do (like custom scrollbars).
4. Use https://picsum.photos/200/300 (or similar dimensions) for placeholder images.
5. No icon component library is available in the raw HTML output. Use inline SVG markup for icons, or simple emoji/text placeholders if complex icons are not crucial.
6. The design should be responsive and look professional.
7. Do NOT wrap the output in markdown code fences (like ```html). Return just the raw HTML code.
8. Ensure high contrast and accessibility.
"""

SYNTHESIS_TASK = (
    "Analyze this design and recreate it exactly as a high-quality HTML file with Tailwind CSS."
)

REFINE_CODE_BLOCK = "Current HTML Code:\n{code}"

REFINE_TASK = """\
User Instruction: {instruction}

Update the HTML code based on the user instruction. Return the full updated HTML file."""

FIG_EXPORT_GUIDE = {
    "title": "Figma File Detected",
    "message": (
        'To edit this design, we need to "see" it first. '
        "Please export your frame as an image (PNG/JPG)."
    ),
    "steps": [
        "Open File > Export... in Figma",
        "Select PNG or JPG (2x is best)",
        "Upload the exported image here",
    ],
    "tip": (
        "Once you upload the image, you can make unlimited changes "
        "to the generated code using the AI chat!"
    ),
}
