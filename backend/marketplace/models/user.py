from decimal import Decimal

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.db.base import Base


class User(Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), default="creator", server_default="creator"
    )  # brand / creator / admin
    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(2, 1), default=Decimal("0"), server_default="0"
    )
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    @property
    def is_brand(self) -> bool:
        return self.role == "brand"

    @property
    def is_creator(self) -> bool:
        return self.role == "creator"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
