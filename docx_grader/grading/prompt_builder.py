"""
Prompt builder for document grading.

Constructs the grading and rule-generation prompts:
- Standard mode judges each rule from the student's XML alone
- Differential mode compares the student's XML against a reference
  (template) document to verify edits, deletions and comment replies
- The system instruction fixes the output contract and lists where in
  WordprocessingML each kind of evidence is usually found
"""

from decimal import Decimal
from enum import Enum
from typing import NamedTuple

from docx_grader.models import DocumentParts, Rubric


class GradingMode(str, Enum):
    """How the student document is judged."""

    STANDARD = "standard"
    DIFFERENTIAL = "differential"


class GradingPrompt(NamedTuple):
    """A ready-to-send grading request."""

    system_instruction: str
    prompt: str
    mode: GradingMode


class PromptBuilder:
    """
    Builds prompts that make the provider judge rules from raw OOXML.

    Providers only report pass/fail per rule; points are never requested
    from them.
    """

    REASONING_LANGUAGE = "Simplified Chinese"

    SYSTEM_PROMPT = """You are an expert IT exam grader. You verify whether a Microsoft Word document meets specific grading rules by analyzing its WordprocessingML XML.

For EACH grading rule:
1. Decide whether it PASSED or FAILED. Judge only from the XML provided.
2. Put the value actually found in the student's file in "extractedValue" (e.g. "14pt", "黑体", "center").
3. If a template document is provided, put the value found in the template in "originalValue".
4. Explain the decision in "reasoning", written in {language}.
5. Use the rule id exactly as given. Report every rule once.

WHERE EVIDENCE IS USUALLY FOUND:
- Font: <w:rFonts w:ascii=".." w:eastAsia=".."/> in run properties <w:rPr>, or inherited from the paragraph style in styles.xml. Bold is <w:b/>, italic <w:i/>, underline <w:u w:val=".."/>, color <w:color w:val="FF0000"/>.
- Font size: <w:sz w:val="X"/> in half-points (X/2 = size in pt). 二号=22pt, 三号=16pt, 四号=14pt, 小四=12pt, 五号=10.5pt.
- Paragraph: alignment <w:jc w:val="center|both|left|right"/>, spacing <w:spacing w:before w:after w:line w:lineRule/> (line="360" with lineRule="auto" = 1.5 lines), indentation <w:ind w:firstLineChars="200"/> or w:firstLine in twips.
- Page margins and size: <w:pgMar w:top w:bottom w:left w:right/> and <w:pgSz/> inside <w:sectPr>, usually at the end of document.xml. Values are twips (1 cm = 567 twips).
- Decorative text (WordArt, text boxes): <w:pict> with <v:textpath string=".."/>, or <wps:txbx> / <mc:AlternateContent> drawing blocks.
- Deleted content: tracked deletions appear as <w:del> with <w:delText>; text that exists in the template but not in the student document has been deleted outright.
- Comments: <w:comment w:author=".." w:id=".."> in comments.xml, anchored by <w:commentRangeStart w:id=".."/> in document.xml. A reply is an additional comment anchored to the same range.
- Table row height: <w:trHeight w:val="X" w:hRule="exact|atLeast"/> in <w:trPr>, in twips.

OUTPUT RULES:
- Respond with ONLY a JSON object, no text before or after it.
- Format: {{"details": [{{"ruleId": "<id>", "passed": true|false, "reasoning": "<text>", "extractedValue": "<text>", "originalValue": "<text>"}}], "summary": "<overall comment in {language}>"}}"""

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system instruction for grading."""
        return cls.SYSTEM_PROMPT.format(language=cls.REASONING_LANGUAGE)

    @classmethod
    def build_grading_prompt(
        cls,
        student: DocumentParts,
        rubric: Rubric,
        reference: DocumentParts | None = None,
        mode: GradingMode | None = None,
    ) -> GradingPrompt:
        """
        Build the grading request for one document.

        Args:
            student: Trimmed parts of the student's document.
            rubric: The rules to judge.
            reference: Trimmed parts of the template document, if any.
            mode: Grading mode. Defaults to differential when a reference
                is given and standard otherwise.

        Returns:
            GradingPrompt with the system instruction and user prompt.

        Raises:
            ValueError: If differential mode is requested without a reference.
        """
        if mode is None:
            mode = GradingMode.DIFFERENTIAL if reference is not None else GradingMode.STANDARD
        if mode == GradingMode.DIFFERENTIAL and reference is None:
            raise ValueError("Differential grading requires a reference document")

        if mode == GradingMode.DIFFERENTIAL:
            header = """=== MODE: DIFFERENTIAL GRADING (TEMPLATE VS STUDENT) ===
Compare the STUDENT XML against the TEMPLATE (ORIGINAL) XML to verify that the student performed the required operations.
1. Check whether the student *changed* the document as the rule requires.
2. If a rule says "delete the paragraph ...", verify it exists in the template but NOT in the student document.
3. If a rule says "reply to the comment ...", look for the response in the student's comments.xml."""
            sections = [
                header,
                cls._section("TEMPLATE (ORIGINAL) DOCUMENT XML", reference.content),
                cls._section("TEMPLATE (ORIGINAL) COMMENTS XML", reference.comments),
            ]
        else:
            header = """=== MODE: STANDARD GRADING ===
Verify whether the student's document meets each grading rule by analyzing its XML structure."""
            sections = [header]

        sections.extend(
            [
                cls._section("STUDENT DOCUMENT XML", student.content),
                cls._section("STUDENT STYLES XML", student.styles),
                cls._section("STUDENT NUMBERING XML", student.numbering),
                cls._section("STUDENT COMMENTS XML", student.comments),
                cls._section("STUDENT RELATIONSHIPS XML", student.relationships),
                cls._format_rules(rubric),
            ]
        )

        prompt = "\n\n".join(s for s in sections if s)
        return GradingPrompt(cls.get_system_prompt(), prompt, mode)

    @classmethod
    def build_rules_prompt(cls, requirements: str, total_points: Decimal) -> str:
        """Build the prompt that turns exam requirements into grading rules."""
        return f"""Analyze the following IT exam requirements and break them down into specific grading rules.
Total Score: {total_points}. The points of all rules must add up to the total score.

Requirements:
---BEGIN REQUIREMENTS---
{requirements}
---END REQUIREMENTS---

Return a JSON object {{"rules": [...]}} where each rule has:
- id: unique string (e.g. "r1")
- description: one specific, checkable requirement in {cls.REASONING_LANGUAGE} (e.g. "标题 '摘要' 应设置为黑体且居中")
- points: number
- category: string (e.g. "格式", "内容", "批注")"""

    @staticmethod
    def _section(title: str, body: str) -> str:
        # Absent parts are left out rather than sent as empty blocks
        if not body:
            return ""
        return f"--- {title} ---\n{body}"

    @staticmethod
    def _format_rules(rubric: Rubric) -> str:
        lines = ["--- GRADING RULES ---"]
        for rule in rubric.rules:
            category = f", {rule.category}" if rule.category else ""
            lines.append(f"- [{rule.id}] ({rule.points} points{category}) {rule.description}")
        return "\n".join(lines)
