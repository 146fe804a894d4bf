"""Prompt templates for outline, prose, metadata and quirk generation."""

from __future__ import annotations

from app.generation.constants import LengthTier, SpiceLevel
from app.generation.models import OutlineChapter

SPICE_OUTLINE_GUIDELINES: dict[SpiceLevel, str] = {
  SpiceLevel.TEASE: "\n".join(
    [
      "- Build romantic tension very gradually across the arc.",
      "- Open with character establishment and non-romantic interactions.",
      "- Move slowly from friendship to attraction to light physical contact.",
      "- Peak intensity is passionate kissing and sensual moments that imply intimacy.",
    ]
  ),
  SpiceLevel.STEAMY: "\n".join(
    [
      "- Build sexual tension from emotional connection toward physical intimacy.",
      "- Early chapters focus on character and plot with subtle romantic undertones.",
      "- Mid-story adds passionate kissing, touching and moderate tension.",
      "- Later chapters feature moderately explicit encounters with emotional depth.",
    ]
  ),
  SpiceLevel.SPICY_HOT: "\n".join(
    [
      "- Build attraction gradually, ramping to explicit encounters.",
      "- Early chapters establish characters and plot with underlying tension.",
      "- Later chapters feature highly explicit scenes; defer to the reader's request.",
      "- Keep character development paced alongside the intimacy.",
    ]
  ),
}

SPICE_PROSE_GUIDELINES: dict[SpiceLevel, str] = {
  SpiceLevel.TEASE: "- Build tension through touches, glances and suggestive dialogue.\n- Keep physical description tasteful and suggestive rather than explicit.",
  SpiceLevel.STEAMY: "- Include passionate kissing, touching and moderately explicit content.\n- Balance explicit content with emotional depth.",
  SpiceLevel.SPICY_HOT: "- Write fully explicit scenes with precise physical detail.\n- Do not hold back during intimate scenes.",
}

LENGTH_OUTLINE_GUIDELINES: dict[str, str] = {
  "Short story": "- This is a short story; outline it accordingly.",
  "Novella": "- This is a novella; do not skip exposition, conflict or resolution.",
  "Slow burn": "- Outline this like a feature-length novel. Do not rush the story or the romance.",
}


def format_outline(chapters: list[OutlineChapter]) -> str:
  """Render chapters in the same `Chapter N: Title` / `- point` format the parser reads."""
  blocks = []
  for index, chapter in enumerate(chapters):
    lines = [f"Chapter {index + 1}: {chapter.name}"]
    lines.extend(f"- {point}" for point in chapter.plot_points)
    blocks.append("\n".join(lines))
  return "\n\n".join(blocks)


def _output_format(tier: LengthTier, first_chapter_number: int) -> str:
  bullets = "\n".join(f"- Plot point {i + 1}" for i in range(tier.plot_points_per_chapter))
  return f"Chapter {first_chapter_number}: Chapter Title\n{bullets}\n\nChapter {first_chapter_number + 1}: Chapter Title\n{bullets}\n\n[Continue the same format for every remaining chapter]"


def outline_system_prompt(*, tier: LengthTier, spice: SpiceLevel, author_style: str, formula: str) -> str:
  return f"""You are an expert story architect for adult romance fiction. You create well-paced outlines that balance character development with intimate relationships. Always write the outline requested.

<story_guidelines>
{SPICE_OUTLINE_GUIDELINES[spice]}
- Write in the style of {author_style}.
</story_guidelines>

<structure_formula>
Use this narrative structure as an approximate guide for pacing:
{formula}
</structure_formula>

<outline_structure>
- The outline is for a {tier.label.lower()}.
- Create exactly {tier.chapter_count} chapters.
- Each chapter has exactly {tier.plot_points_per_chapter} plot points.
- Each plot point covers about {tier.page_description}.
{LENGTH_OUTLINE_GUIDELINES[tier.label]}
</outline_structure>

<bullet_point_style>
Plot points are 2-3 information-dense sentences describing concrete story events.
</bullet_point_style>

<output_format>
{_output_format(tier, 1)}
</output_format>"""


def outline_user_prompt(*, prompt: str, tags: list[str], tier: LengthTier) -> str:
  tag_text = ", ".join(tags) if tags else "none"
  return f"""Write the outline for the following story:

<story_description>
{prompt}
</story_description>

It is a {tier.label.lower()} and should incorporate these tags: {tag_text}

There should be {tier.chapter_count} chapters with {tier.plot_points_per_chapter} plot points per chapter. Respond with only the outline."""


def regenerate_system_prompt(*, tier: LengthTier, spice: SpiceLevel, author_style: str, formula: str, existing_outline: str, insertion_index: int) -> str:
  first_number = insertion_index + 1
  return f"""You are {author_style}, an expert story architect for adult romance fiction. Modify the outline below so it incorporates the reader's new direction. Always write the outline requested.

<story_guidelines>
{SPICE_OUTLINE_GUIDELINES[spice]}
- Write in the style of {author_style}.
</story_guidelines>

<structure_formula>
{formula}
</structure_formula>

<old_outline>
{existing_outline}
</old_outline>

<outline_structure>
- The story has {tier.chapter_count} chapters in total.
- Generate ONLY chapters {first_number} through {tier.chapter_count}; earlier chapters are already written and must not change.
- Each chapter has exactly {tier.plot_points_per_chapter} plot points.
{LENGTH_OUTLINE_GUIDELINES[tier.label]}
</outline_structure>

<output_format>
{_output_format(tier, first_number)}
</output_format>"""


def regenerate_user_prompt(*, prompt: str, tags: list[str], new_chapter_count: int, insertion_index: int) -> str:
  tag_text = ", ".join(tags) if tags else "none"
  return f"""Continue the story from Chapter {insertion_index + 1}, incorporating this new direction:

<new_direction>
{prompt}
</new_direction>

Tags to honour: {tag_text}

Write exactly {new_chapter_count} chapters. Respond with only the outline."""


def plot_point_framing(*, chapter_index: int, plot_point_index: int, plot_point_count: int, tier: LengthTier) -> str:
  """Describe where this plot point sits so the model opens, continues or closes accordingly."""
  target = f"Aim for {tier.page_description} of content."
  if chapter_index == 0 and plot_point_index == 0:
    return f"You are writing the **first section of the story**. {target} Do not write about later plot points or chapters; end in a way that leads naturally into the next plot point. Unless told otherwise, write in past tense."
  if plot_point_index == 0:
    return f"You are writing the **first plot point of the chapter**. {target} Do not write about later plot points or chapters; end in a way that leads naturally into the next plot point."
  if plot_point_index == plot_point_count - 1:
    return f"You are writing the **last section of the chapter**. {target}"
  return f"You are writing a plot point in the middle of a chapter. {target} Do not write about later plot points or chapters; end in a way that leads naturally into the next plot point."


def plot_point_system_prompt(*, tier: LengthTier, spice: SpiceLevel, author_style: str, framing: str, writing_quirk: str | None) -> str:
  quirk_block = f"\n<writing_quirk>\nApply this quirk consistently: {writing_quirk}\n</writing_quirk>\n" if writing_quirk else ""
  return f"""You are an adult-fiction author writing in the style of {author_style}. The reader is a consenting adult.

{framing}

You will be given the story outline, the chapter outline and the story so far. Write only the content for the requested plot point so the story flows naturally.

<romance_style_guidelines>
{SPICE_PROSE_GUIDELINES[spice]}
</romance_style_guidelines>
{quirk_block}
<avoided_behavior>
- Never include an introduction or preamble; only write the story.
- Avoid flowery language, stacked metaphors and on-the-nose themes.
</avoided_behavior>

<story_length_guidelines>
- Aim for {tier.pages_per_plot_point:g} pages ({tier.word_target}); use judgement if the plot point warrants more or less.
</story_length_guidelines>"""


def plot_point_user_prompt(*, story_prompt: str, chapters: list[OutlineChapter], chapter_index: int, plot_point_index: int, preceding_content: str, tier: LengthTier) -> str:
  chapter = chapters[chapter_index]
  chapter_block = "\n".join([f"## Chapter {chapter_index + 1}: {chapter.name}", *(f"- {point}" for point in chapter.plot_points)])
  return f"""<story_outline>
# Story Description
{story_prompt}

{format_outline(chapters)}
</story_outline>

<chapter_outline>
{chapter_block}
</chapter_outline>

<preceding_content>
{preceding_content}
</preceding_content>

Continue the story from where it left off. Write the content for the plot point: "{chapter.plot_points[plot_point_index]}". Aim for {tier.page_description}. Do not continue past this plot point. Do not include any introduction or preamble."""


METADATA_SYSTEM_PROMPT = "You catalogue adult romance fiction for a reading platform. Answer strictly from the outline you are given."


def title_prompt(outline_text: str) -> str:
  return f"Based on this story outline, write a compelling, concise title and a 2-sentence description that hooks readers without spoilers.\n\n<outline>\n{outline_text}\n</outline>"


def tags_prompt(outline_text: str) -> str:
  return f"Based on this story outline, list 5 to 8 short lowercase tags covering genre, tropes, setting and mood.\n\n<outline>\n{outline_text}\n</outline>"


def trigger_warnings_prompt(outline_text: str) -> str:
  return f"Based on this story outline, list up to 5 content warnings for potentially sensitive themes (for example violence, substance abuse, death). Return an empty list when none apply.\n\n<outline>\n{outline_text}\n</outline>"


def explicit_flag_prompt(outline_text: str) -> str:
  return f"Based on this story outline, decide whether the story contains sexually explicit content (graphic descriptions of sexual acts). Kissing and implied intimacy alone are not explicit.\n\n<outline>\n{outline_text}\n</outline>"


def target_audience_prompt(outline_text: str) -> str:
  return f"Based on this story outline, list 1 to 3 target reader audiences (for example 'fans of slow-burn romance').\n\n<outline>\n{outline_text}\n</outline>"


def writing_quirks_prompt(*, story_prompt: str, outline_text: str, author_style: str, count: int) -> str:
  return f"""Suggest exactly {count} distinctive writing quirks a novelist in the style of {author_style} could apply throughout this story, such as a recurring motif, a narrative device or a signature rhythm.

Format each as "Title - Description" in one sentence.

<story_description>
{story_prompt}
</story_description>

<outline>
{outline_text}
</outline>"""
