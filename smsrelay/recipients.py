from typing import Optional, Sequence


def recipient_preview(recipients: Sequence[str]) -> Optional[str]:
    """
    Summarize a recipient list for display on a batch.

    >>> recipient_preview(["A", "B", "C", "D", "E"])
    'A, B, and 3 others'
    """
    count = len(recipients)
    if count == 0:
        return None
    if count == 1:
        return recipients[0]
    if count == 2:
        return f"{recipients[0]} and {recipients[1]}"
    if count == 3:
        return f"{recipients[0]}, {recipients[1]}, and {recipients[2]}"
    return f"{recipients[0]}, {recipients[1]}, and {count - 2} others"
