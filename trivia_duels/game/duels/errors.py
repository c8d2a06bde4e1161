class DuelError(Exception):
    code = "duel_error"


class DuelUnauthorizedError(DuelError):
    code = "unauthorized"


class DuelPreconditionFailedError(DuelError):
    code = "precondition_failed"


class DuelNotFoundError(DuelError):
    code = "not_found"


class DuelAlreadyJoinedError(DuelError):
    code = "already_joined"


class DuelExpiredError(DuelError):
    code = "expired"


class DuelOwnDuelError(DuelError):
    code = "own_duel"


class DuelConflictError(DuelError):
    code = "conflict"
