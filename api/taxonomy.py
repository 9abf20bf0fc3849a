from __future__ import annotations

from dataclasses import dataclass
import re
from types import MappingProxyType
from typing import Mapping
import unicodedata


@dataclass(frozen=True)
class TaxonomyEntry:
    label: str
    aliases: tuple[str, ...]
    keywords: tuple[str, ...]
    umbrella: bool = False


def normalize_text(text: str | None) -> str:
    if not text:
        return ""
    lowered = str(text).lower()
    stripped = "".join(
        ch for ch in unicodedata.normalize("NFD", lowered) if unicodedata.category(ch) != "Mn"
    )
    return re.sub(r"\s+", " ", stripped).strip()


# Broad buckets. Never used as a hard filter signal, but an explicit filter
# that resolves to one of them is kept as-is.
UMBRELLA_ENTRIES = [
    TaxonomyEntry(
        label="comida",
        aliases=("comidas", "alimentacao", "onde comer", "gastronomia"),
        keywords=("comida", "comer", "almoço", "jantar", "refeição", "gastronomia"),
        umbrella=True,
    ),
    TaxonomyEntry(
        label="bebidas",
        aliases=("bebida", "drink", "onde beber"),
        keywords=("bebida", "bebidas", "drinks", "beber"),
        umbrella=True,
    ),
    TaxonomyEntry(
        label="passeios",
        aliases=("passeio", "atrações", "o que fazer"),
        keywords=("passeio", "passeios", "roteiro", "atração", "atrações"),
        umbrella=True,
    ),
    TaxonomyEntry(
        label="hospedagem",
        aliases=("hospedar", "estadia", "onde ficar", "acomodação"),
        keywords=("hospedagem", "onde ficar", "dormir", "acomodação"),
        umbrella=True,
    ),
    TaxonomyEntry(
        label="transporte",
        aliases=("deslocamento", "locomoção"),
        keywords=("transporte", "locomoção", "como chegar"),
        umbrella=True,
    ),
]

CATEGORY_ENTRIES = [
    TaxonomyEntry(
        label="restaurante",
        aliases=("restaurantes", "self-service", "a la carte"),
        keywords=("restaurante", "restaurantes", "self service", "a la carte", "prato feito"),
    ),
    TaxonomyEntry(
        label="pizzaria",
        aliases=("pizza", "pizzas", "pizzarias", "pitza", "piza"),
        keywords=("pizzaria", "pizza", "pizzas", "rodízio de pizza", "forno a lenha"),
    ),
    TaxonomyEntry(
        label="churrascaria",
        aliases=("churrasco", "churras", "picanha", "piconha", "carne", "carnes", "rodízio", "steakhouse"),
        keywords=("churrascaria", "churrasco", "picanha", "rodízio de carne", "costela", "fraldinha", "espeto"),
    ),
    TaxonomyEntry(
        label="frutos do mar",
        aliases=("peixaria", "seafood", "moqueca", "marisqueira"),
        keywords=("frutos do mar", "peixe", "peixes", "moqueca", "camarão", "lagosta", "marisco", "ostra"),
    ),
    TaxonomyEntry(
        label="sushi",
        aliases=("japonesa", "japonês", "japa", "comida japonesa", "temakeria", "oriental"),
        keywords=("sushi", "japonesa", "japonês", "temaki", "sashimi", "yakisoba", "comida japonesa"),
    ),
    TaxonomyEntry(
        label="hamburgueria",
        aliases=("hambúrguer", "hamburquer", "burger", "burguer", "hambúrgueres"),
        keywords=("hamburgueria", "hambúrguer", "burger", "smash"),
    ),
    TaxonomyEntry(
        label="lanchonete",
        aliases=("lanches", "snack bar", "pastelaria"),
        keywords=("lanchonete", "lanche", "salgado", "sanduíche", "pastel", "cachorro quente"),
    ),
    TaxonomyEntry(
        label="padaria",
        aliases=("padarias", "panificadora", "confeitaria"),
        keywords=("padaria", "pão de queijo", "confeitaria", "panificadora"),
    ),
    TaxonomyEntry(
        label="cafeteria",
        aliases=("café", "cafés", "coffee", "coffee shop"),
        keywords=("cafeteria", "café", "café da manhã", "cappuccino", "brunch"),
    ),
    TaxonomyEntry(
        label="bistrô",
        aliases=("bistrôs",),
        keywords=("bistrô", "culinária autoral", "jantar romântico"),
    ),
    TaxonomyEntry(
        label="sorveteria",
        aliases=("sorvete", "gelateria", "açaí", "açaiteria"),
        keywords=("sorveteria", "sorvete", "gelato", "açaí"),
    ),
    TaxonomyEntry(
        label="bar",
        aliases=("bares", "boteco", "botequim", "pub", "choperia"),
        keywords=("bar", "bares", "boteco", "pub", "chopp", "chope", "happy hour"),
    ),
    TaxonomyEntry(
        label="cervejaria",
        aliases=("cervejarias", "brewpub", "cerveja"),
        keywords=("cervejaria", "cerveja artesanal", "chopp artesanal"),
    ),
    TaxonomyEntry(
        label="balada",
        aliases=("boate", "nightclub", "casa noturna"),
        keywords=("balada", "boate", "night", "festa", "música ao vivo"),
    ),
    TaxonomyEntry(
        label="pousada",
        aliases=("pousadas", "chalé", "chalés"),
        keywords=("pousada", "pousadas", "chalé", "suíte"),
    ),
    TaxonomyEntry(
        label="hotel",
        aliases=("hotéis", "resort", "resorts", "flat", "apart hotel"),
        keywords=("hotel", "hotéis", "resort", "flat", "apart hotel"),
    ),
    TaxonomyEntry(
        label="hostel",
        aliases=("albergue", "hostels"),
        keywords=("hostel", "albergue"),
    ),
    TaxonomyEntry(
        label="casa de temporada",
        aliases=("airbnb", "temporada", "aluguel por temporada"),
        keywords=("casa de temporada", "aluguel por temporada", "airbnb", "apartamento"),
    ),
    TaxonomyEntry(
        label="praia",
        aliases=("praias", "orla", "beach"),
        keywords=("praia", "praias", "faixa de areia", "bandeira azul", "orla", "mar calmo"),
    ),
    TaxonomyEntry(
        label="barco",
        aliases=("escuna", "escunas", "lancha", "catamarã", "passeio de barco", "barcos"),
        keywords=("barco", "passeio de barco", "escuna", "lancha", "catamarã", "barco pirata", "veleiro"),
    ),
    TaxonomyEntry(
        label="mergulho",
        aliases=("snorkel", "snorkeling", "batismo", "dive"),
        keywords=("mergulho", "snorkel", "batismo de mergulho", "cilindro"),
    ),
    TaxonomyEntry(
        label="trilha",
        aliases=("trilhas", "trekking", "caminhada"),
        keywords=("trilha", "trilhas", "caminhada", "ecoturismo", "mirante"),
    ),
    TaxonomyEntry(
        label="buggy",
        aliases=("bugue", "bugre", "buggies"),
        keywords=("buggy", "bugue", "passeio de buggy", "dunas"),
    ),
    TaxonomyEntry(
        label="quadriciclo",
        aliases=("quadri", "quadriciclos", "atv"),
        keywords=("quadriciclo", "quadri", "off road"),
    ),
    TaxonomyEntry(
        label="city tour",
        aliases=("tour guiado", "guia turístico", "excursão"),
        keywords=("city tour", "tour", "tour guiado", "guia turístico", "bate e volta"),
    ),
    TaxonomyEntry(
        label="transfer",
        aliases=("traslado", "translado", "transfers"),
        keywords=("transfer", "traslado", "aeroporto"),
    ),
    TaxonomyEntry(
        label="aluguel de carro",
        aliases=("locadora", "alugar carro", "rent a car", "locação de veículos", "aluguel de carros"),
        keywords=("aluguel de carro", "alugar carro", "locadora", "locadora de veículos", "rent a car"),
    ),
    TaxonomyEntry(
        label="taxi",
        aliases=("táxi", "uber", "taxis"),
        keywords=("taxi", "uber", "motorista", "corrida"),
    ),
    TaxonomyEntry(
        label="onibus",
        aliases=("ônibus", "rodoviária", "busão"),
        keywords=("ônibus", "rodoviária", "passagem"),
    ),
    TaxonomyEntry(
        label="esportes aquaticos",
        aliases=("kitesurf", "stand up paddle", "jet ski", "jetski", "caiaque", "surf"),
        keywords=("stand up", "kitesurf", "windsurf", "surf", "caiaque", "jet ski"),
    ),
    TaxonomyEntry(
        label="spa",
        aliases=("massagem", "massoterapia", "day spa"),
        keywords=("spa", "massagem", "day spa", "relaxamento"),
    ),
    TaxonomyEntry(
        label="loja",
        aliases=("lojas", "shopping", "artesanato", "souvenir"),
        keywords=("loja", "compras", "artesanato", "souvenir", "moda praia"),
    ),
    TaxonomyEntry(
        label="farmacia",
        aliases=("farmácia", "drogaria"),
        keywords=("farmácia", "drogaria", "remédio"),
    ),
]

ALL_ENTRIES = UMBRELLA_ENTRIES + CATEGORY_ENTRIES


_TAXONOMY: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        normalize_text(entry.label): tuple(
            dict.fromkeys(normalize_text(keyword) for keyword in entry.keywords)
        )
        for entry in ALL_ENTRIES
    }
)
_ALIAS_MAP: Mapping[str, str] = MappingProxyType(
    {
        normalize_text(alias): normalize_text(entry.label)
        for entry in ALL_ENTRIES
        for alias in (entry.label,) + entry.aliases
    }
)
_ALIASES_BY_CATEGORY: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        normalize_text(entry.label): tuple(normalize_text(alias) for alias in entry.aliases)
        for entry in ALL_ENTRIES
    }
)
_UMBRELLA = frozenset(normalize_text(entry.label) for entry in ALL_ENTRIES if entry.umbrella)


def taxonomy_categories() -> tuple[str, ...]:
    return tuple(_TAXONOMY)


def category_keywords(category: str | None) -> tuple[str, ...]:
    return _TAXONOMY.get(normalize_text(category), ())


def aliases_for(category: str | None) -> tuple[str, ...]:
    return _ALIASES_BY_CATEGORY.get(normalize_text(category), ())


def category_variants(category: str | None) -> tuple[str, ...]:
    """Normalized spellings a stored partner category may use for this tag."""
    tag = map_alias_category(category)
    if tag is None:
        return ()
    return tuple(dict.fromkeys((tag,) + aliases_for(tag)))


def alias_table() -> Mapping[str, str]:
    return _ALIAS_MAP


def is_known_category(category: str | None) -> bool:
    return normalize_text(category) in _TAXONOMY


def is_umbrella_category(category: str | None) -> bool:
    return normalize_text(category) in _UMBRELLA


def map_alias_category(value: str | None) -> str | None:
    """
    Resolve a free-text category to its canonical tag.

    Unknown categories come back as their own normalized form, so a category
    stored in the partners table that the taxonomy does not know about still
    works as a filter. Only empty input yields None.
    """
    normalized = normalize_text(value)
    if not normalized:
        return None
    return _ALIAS_MAP.get(normalized, normalized)
