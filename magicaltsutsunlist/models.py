from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    is_registered = Column(Boolean, nullable=False, default=False)
    username = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="otaku")

    anime_entries = relationship("AnimeEntry", back_populates="user", cascade="all, delete-orphan")
    manga_entries = relationship("MangaEntry", back_populates="user", cascade="all, delete-orphan")


class Anime(Base):
    """Key-only mirror of the anime catalog, used as a foreign-key target."""

    __tablename__ = "animes"

    anime_id = Column(String(64), primary_key=True)


class Manga(Base):
    """Key-only mirror of the manga catalog, used as a foreign-key target."""

    __tablename__ = "mangas"

    manga_id = Column(String(64), primary_key=True)


class AnimeEntry(Base):
    __tablename__ = "mtlanime"
    __table_args__ = (UniqueConstraint("user_id", "anime_id", name="uq_mtlanime_user_anime"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    catalog_id = Column("anime_id", String(64), ForeignKey("animes.anime_id"), nullable=False)
    title = Column(String(255), nullable=False)
    synopsis = Column(Text, nullable=False)
    image = Column(String(255), nullable=False)
    genres = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False)

    user = relationship("User", back_populates="anime_entries")


class MangaEntry(Base):
    __tablename__ = "mtlmanga"
    __table_args__ = (UniqueConstraint("user_id", "manga_id", name="uq_mtlmanga_user_manga"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    catalog_id = Column("manga_id", String(64), ForeignKey("mangas.manga_id"), nullable=False)
    title = Column(String(255), nullable=False)
    synopsis = Column(Text, nullable=False)
    image = Column(String(255), nullable=False)
    genres = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False)

    user = relationship("User", back_populates="manga_entries")
