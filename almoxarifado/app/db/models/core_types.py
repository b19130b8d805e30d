import enum


class Role(str, enum.Enum):
    admin = "Admin"
    operator = "Operador"
    requester = "Requester"


class ProductType(str, enum.Enum):
    consumable = "CONSUMABLE"
    durable = "DURABLE"


class MovementType(str, enum.Enum):
    entry = "ENTRY"
    exit = "EXIT"
    return_ = "RETURN"
    audit = "AUDIT"


class EntryType(str, enum.Enum):
    official = "OFFICIAL"
    unofficial = "UNOFFICIAL"


class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# rôles autorisés à faire bouger le stock
STOCK_MANAGER_ROLES = {Role.admin, Role.operator}
