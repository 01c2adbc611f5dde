import enum

class UnitType(str, enum.Enum):
    pcs = "pcs"
    meter = "meter"
    sqft = "sqft"
    sqyd = "sqyd"
    sqmt = "sqmt"

class LedgerReason(str, enum.Enum):
    manual = "manual"
    adjustment = "adjustment"
    invoice = "invoice"
    invoice_return = "return"
    dispatch = "dispatch"
    event_return = "event_return"
    b2b_dispatch = "b2b_dispatch"
    b2b_return = "b2b_return"

class StockUpdateType(str, enum.Enum):
    stock_in = "in"
    stock_out = "out"
    adjustment = "adjustment"

class StockLevelFilter(str, enum.Enum):
    out = "out"
    low = "low"
    medium = "medium"
    good = "good"

class EventStatus(str, enum.Enum):
    new = "new"
    confirmed = "confirmed"
    reserved = "reserved"
    dispatched = "dispatched"
    returned = "returned"

class ExpenseCategory(str, enum.Enum):
    travel = "travel"
    food = "food"
    material = "material"
    misc = "misc"

class InvoiceStatus(str, enum.Enum):
    draft = "draft"
    final = "final"
    returned = "returned"

class Language(str, enum.Enum):
    en = "en"
    hi = "hi"

class PaymentMode(str, enum.Enum):
    cash = "cash"
    bank_transfer = "bank_transfer"
    upi = "upi"
    cheque = "cheque"
    online = "online"

class Shift(str, enum.Enum):
    full = "full"
    half = "half"
    absent = "absent"

class PayrollStatus(str, enum.Enum):
    draft = "draft"
    paid = "paid"

class LeadStatus(str, enum.Enum):
    new = "new"
    callback = "callback"
    hot = "hot"
    rejected = "rejected"
    converted = "converted"

class CallOutcome(str, enum.Enum):
    answered = "answered"
    missed = "missed"
    voicemail = "voicemail"
    connected = "connected"
