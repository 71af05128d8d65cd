from pydantic import BaseModel, ConfigDict, Field


# Struct numbers are doubles; larger integers would not survive the trip exactly.
MAX_AMOUNT = 2**53 - 1


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)


class AuthorizeRequest(_Request):
    card_number: str = Field(min_length=1)
    expiry_month: str = ""
    expiry_year: str = ""
    cvv: str = ""
    amount: int = Field(ge=0, le=MAX_AMOUNT)
    currency: str = Field(min_length=1)


class TransactionRequest(_Request):
    transaction_id: str = Field(min_length=1)
    amount: int = Field(ge=0, le=MAX_AMOUNT)


class VoidRequest(_Request):
    transaction_id: str = Field(min_length=1)


class GetTransactionRequest(_Request):
    transaction_id: str = Field(min_length=1)
