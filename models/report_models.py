from enum import Enum


class ReportKind(str, Enum):
    SALES = "sales"
    USERS = "users"
    INVENTORY = "inventory"
    TRANSFERS = "transfers"
