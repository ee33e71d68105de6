from .buffer import DeleteSummary, EditBuffer
from .bulk import BulkCommitResult, BulkEntryBuilder, BulkFailure, YearSection
from .exceptions import (BulkEntryError, EditSessionError, MatrixError, MatrixFullError,
                         MatrixValidationError, SaveInProgressError, StoreError, UnknownTermError)
from .ledger import PendingChange, PendingChangeLedger
from .reconciler import Reconciler, SaveSummary
from .schema import CellKey, CellState, ChangeKey, Role, ROLE_IDS
from .session import MatrixEditSession
from .store import CommissionRecord, CommissionStore, SQLCommissionStore
