"""
FamCoins Sequencer — Demo entry point.

`python main.py` runs one wizard session end to end against the configured
record store: seeds a few task templates, builds a weekly sequence for a demo
child, and prints what was materialized.
"""

import asyncio
import logging

from famcoins.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from datetime import date

from famcoins.adapters.store_factory import create_record_store, create_template_catalog
from famcoins.core.draft import WizardStep
from famcoins.core.errors import ConflictError
from famcoins.core.materializer import SequenceMaterializer
from famcoins.core.sequences import SequenceQueries
from famcoins.core.wizard import SequenceWizard

_DEMO_TEMPLATES = [
    {"id": "demo-make-bed", "name": "Make bed", "effort_score": 1},
    {"id": "demo-brush-teeth", "name": "Brush teeth", "effort_score": 1},
    {"id": "demo-homework", "name": "Homework", "effort_score": 3, "photo_proof_required": True},
]


async def main() -> None:
    store = create_record_store()
    existing = await store.select("task_templates", {"id": [t["id"] for t in _DEMO_TEMPLATES]})
    known = {row["id"] for row in existing}
    for template in _DEMO_TEMPLATES:
        if template["id"] not in known:
            await store.insert("task_templates", template)

    queries = SequenceQueries(store)
    materializer = SequenceMaterializer(store, create_template_catalog(store))
    wizard = SequenceWizard(materializer, queries, parent_id="demo-parent")

    wizard.select_child("demo-child")
    wizard.update_settings(period="weekly", start_date=date.today(), budget=10)
    mornings = wizard.add_group("Mornings", [1, 2, 3, 4, 5])
    evenings = wizard.add_group("School nights", [1, 2, 3, 4])
    wizard.set_tasks_for_group(mornings.id, ["demo-make-bed", "demo-brush-teeth"])
    wizard.set_tasks_for_group(evenings.id, ["demo-homework"])
    wizard.go_to_step(WizardStep.REVIEW_CREATE)

    print(f"Period: {wizard.period_label}")
    print(f"Estimated completions: {wizard.total_completions}")
    print(f"FAMCOINS per task: {wizard.famcoin_per_task} (remainder {wizard.famcoin_remainder})")

    try:
        sequence_id = await wizard.submit()
    except ConflictError as exc:
        print(exc.user_message)
        await wizard.edit_existing()
        sequence_id = await wizard.submit()
        print(f"Re-built existing sequence {sequence_id}")

    sequence = await queries.get_sequence(sequence_id)
    completions = await queries.list_completions(sequence_id)
    print(f"{sequence.name}: {sequence.start_date} -> {sequence.end_date}")
    print(f"{len(completions)} completions due")


if __name__ == "__main__":
    asyncio.run(main())
