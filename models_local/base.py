from sqlalchemy.orm import DeclarativeBase


class LocalBase(DeclarativeBase):
    pass
