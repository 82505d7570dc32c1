# src/retail_audit/classifier/prompt_builder.py
from __future__ import annotations

from dataclasses import dataclass

from retail_audit.data_models import ClassificationVerdict, RawRecord


PROMPT_PRECEDENCE_RULE = """
You are providing an ADVISORY assessment of a Buyer Lead (BL).

Binding rule:
- The Indiamart audit verdict is computed by a deterministic, threshold-based rule and is PRIMARY.
- Your opinion is advisory only. It must NOT override, replace or re-label the Indiamart verdict.
- If your assessment disagrees with the threshold, keep your opinion but describe the disagreement
  in "conflict_notes"; the Indiamart verdict still takes precedence.
- Base your opinion on typical commercial buying behaviour, market norms and practical usage patterns.
- Do NOT invent facts that are not present in the record.
""".strip()


PROMPT_OUTPUT_FORMAT = r"""
Respond ONLY with a valid JSON object in this exact format:
{
  "bl_type": "Retail" | "Non-Retail",
  "threshold_value": "suggested threshold with unit as string",
  "reasoning": "1-2 sentences explaining typical consumer vs commercial buying behaviour for this product category",
  "evaluation_signals": {            // optional
    "threshold": "how the requested quantity compares to the cutoff",
    "order_value": "what the probable order value suggests",
    "buyer_intent": "what the buyer details suggest",
    "product_type": "consumer or commercial nature of the product"
  },
  "conflict_notes": "where your opinion disagrees with the Indiamart threshold, or empty string"  // optional
}
No extra text outside the JSON.
""".strip()


@dataclass
class PromptBuilder:
    """
    Строитель промптов для advisory-оценки одного buylead'а.
    """

    def build_system_prompt(self, audit_instructions: str) -> str:
        """
        Системный промпт: инструкции аудитора + правило приоритета + контракт ответа.
        """
        return f"{audit_instructions.strip()}\n\n{PROMPT_PRECEDENCE_RULE}\n\n{PROMPT_OUTPUT_FORMAT}"

    def build_user_prompt(self, record: RawRecord, verdict: ClassificationVerdict) -> str:
        """
        Пользовательский промпт: только бизнес-поля записи.
        Внутренности матчинга не раскрываем - максимум найденный порог.
        """
        lines = [
            "Evaluate this Buyer Lead and give your advisory commercial assessment.",
            "",
            "Record Details:",
            f"- Buylead ID: {record.buylead_id}",
            f"- Category: {record.category_name}",
            f"- Quantity Requested: {record.quantity} {record.quantity_unit}".rstrip(),
            f"- Probable Order Value: {record.probable_order_value}",
            f"- Buyer Details: {record.details}",
        ]
        if verdict.threshold_available:
            lines.append(f"- Category Retail Threshold: {verdict.threshold_display}")
        else:
            lines.append("- Category Retail Threshold: not available")

        return "\n".join(lines)
