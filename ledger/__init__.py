from ledger.lot_ledger import LotLedger
from ledger.matcher import MatchingEngine, match_transactions
from ledger.positions import build_position, build_positions, replay_positions
from ledger.rebuild import recompute_positions, regenerate_snapshots
from ledger.snapshots import compute_snapshot, daily_pl_change
from ledger.summary import build_portfolio_summary
from ledger.validation import ValidationError, validate_transaction
