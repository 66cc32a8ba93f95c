from typing import Optional

from quizroom.errors import ValidationError
from quizroom.models import BOARD_SIZE, BingoCell


def check_markable(board: Optional[list[BingoCell]], cell_index: int, category: Optional[str]) -> BingoCell:
    """Validate that ``cell_index`` may be marked for a question of ``category``.

    Raises ValidationError with a user-facing reason otherwise; returns the cell.
    """
    if not board:
        raise ValidationError('No bingo board loaded')
    if not isinstance(cell_index, int) or isinstance(cell_index, bool) or not 0 <= cell_index < BOARD_SIZE:
        raise ValidationError(f'cellIndex must be between 0 and {BOARD_SIZE - 1}')
    cell = board[cell_index]
    if cell.marked:
        raise ValidationError('Cell already marked')
    if category is None or cell.category != category:
        raise ValidationError('Cell category does not match the current question')
    return cell


def markable_cells(board: Optional[list[BingoCell]], category: Optional[str]) -> list[int]:
    if not board or category is None:
        return []
    return [i for i, c in enumerate(board) if not c.marked and c.category == category]


def newly_marked(before: Optional[list[BingoCell]], after: Optional[list[BingoCell]]) -> list[int]:
    if not after:
        return []
    before = before or [BingoCell(category=c.category) for c in after]
    return [i for i, (a, b) in enumerate(zip(before, after)) if b.marked and not a.marked]
