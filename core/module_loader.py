# ================================================================
# File     : module_loader.py
# Purpose  : Run the Intune category collectors one after another
# Notes    : Each category is isolated: a failure is logged, recorded
#            on its CategoryResult and the run moves on. Runs strictly
#            in sequence to stay clear of Graph throttling.
# ================================================================

import traceback
from typing import Dict, List, Optional

from core.models import CategoryResult, STATUS_COMPLETE, STATUS_PARTIAL, STATUS_FAILED
from core.utils import fncPrintMessage
from modules.intune.assignments import fncMakeGroupLookup, GroupLookup
from modules.intune.categories import CATEGORIES, CATEGORY_BY_KEY, Category


# ================================================================
# Function: fncRunCategory
# Purpose : Execute one category collector and classify the outcome
# Notes   : Policy categories keep what was gathered before a failure;
#           script categories drop the lot
# ================================================================
def fncRunCategory(category: Category, client, group_lookup: GroupLookup) -> CategoryResult:
    result = CategoryResult(category=category.key)
    fncPrintMessage(f"Collecting {category.label}...", "info")
    try:
        category.collect(client, group_lookup, result)
    except Exception as ex:
        result.error = str(ex)
        fncPrintMessage(traceback.format_exc(), "debug")
        if category.discards_partial:
            dropped = len(result.records)
            result.records = []
            result.status = STATUS_FAILED
            fncPrintMessage(
                f"Failed to collect {category.label}: {ex} (discarded {dropped} partial item(s))", "warn"
            )
        else:
            result.status = STATUS_PARTIAL if result.records else STATUS_FAILED
            fncPrintMessage(
                f"Failed to collect {category.label}: {ex} (keeping {len(result.records)} item(s))", "warn"
            )
        return result

    result.status = STATUS_COMPLETE
    fncPrintMessage(f"{category.label}: {len(result.records)} Windows item(s)", "success")
    return result


# ================================================================
# Function: fncResolveCategories
# Purpose : Apply the skip list to the declared category order
# Notes   : Unknown names in the skip list are warned about, not fatal
# ================================================================
def fncResolveCategories(skip_list: Optional[List[str]] = None) -> List[Category]:
    skip = set(skip_list or [])
    for name in sorted(skip - set(CATEGORY_BY_KEY)):
        fncPrintMessage(f"Unknown category in skip list: {name}", "warn")
    return [c for c in CATEGORIES if c.key not in skip]


# ================================================================
# Function: fncRunAllCategories
# Purpose : Run every (non-skipped) category in declared order
# Notes   : Returns { category_key: CategoryResult }
# ================================================================
def fncRunAllCategories(client, skip_list: Optional[List[str]] = None,
                        group_lookup: Optional[GroupLookup] = None) -> Dict[str, CategoryResult]:
    group_lookup = group_lookup or fncMakeGroupLookup(client)
    categories = fncResolveCategories(skip_list)
    fncPrintMessage(f"Running {len(categories)} categories (sequential)", "info")

    results: Dict[str, CategoryResult] = {}
    for category in categories:
        results[category.key] = fncRunCategory(category, client, group_lookup)

    failed = [k for k, r in results.items() if not r.ok]
    if failed:
        fncPrintMessage(f"Categories with problems: {', '.join(failed)}", "warn")
    fncPrintMessage("All categories collected.", "success")
    return results
