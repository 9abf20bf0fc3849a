from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import Vector

from .db import Base

EMBEDDING_DIMENSIONS = 768


class Cidade(Base):
    __tablename__ = "cidades"

    id = Column(String(36), primary_key=True)
    nome = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)

    parceiros = relationship("Parceiro", back_populates="cidade")


class Parceiro(Base):
    __tablename__ = "parceiros"

    id = Column(String(36), primary_key=True)
    cidade_id = Column(String(36), ForeignKey("cidades.id"), index=True, nullable=True)

    tipo = Column(String, nullable=True)
    nome = Column(String, nullable=False)
    categoria = Column(String, index=True, nullable=True)
    descricao = Column(Text, nullable=True)
    endereco = Column(String, nullable=True)
    contato = Column(String, nullable=True)
    faixa_preco = Column(String, nullable=True)
    beneficio_bepit = Column(String, nullable=True)

    ativo = Column(Boolean, nullable=False, default=True, server_default="true")
    bloqueado = Column(Boolean, nullable=True, default=False)
    bloqueado_motivo = Column(String, nullable=True)

    embedding_768 = Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)

    cidade = relationship("Cidade", back_populates="parceiros")


class EventoAnalytics(Base):
    __tablename__ = "eventos_analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tipo_evento = Column(String, index=True, nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
