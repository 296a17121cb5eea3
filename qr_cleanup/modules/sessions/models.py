from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from qr_cleanup.core.database import Base


# ---------------------------------------------------------
# Сессии входа (таблица принадлежит основному приложению)
# ---------------------------------------------------------
class Session(Base):
    __tablename__ = "sessions"

    # SQLite only autoincrements INTEGER PRIMARY KEY
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    # QR-вход: токен активен, пока не истёк qr_expires_at
    qr_token = Column(String(255), nullable=True)
    qr_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self):
        return f"<Session id={self.id} qr_active={self.qr_token is not None}>"
