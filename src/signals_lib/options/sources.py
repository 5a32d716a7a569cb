"""
Broker option-chain adapters and the source registry.

Each adapter accepts the raw payload exactly as its upstream returns it
(already fetched by the surrounding system) and produces the canonical
``NormalizedChain``.  Adapters are independent; add a new broker by
subclassing ``OptionChainSource`` and registering it in
``SOURCE_ADAPTERS``.

Supported sources:
  - DHAN     — ScanX option chain (``oc`` keyed by strike string, expiries as
               seconds since 1980-01-01 IST, futures list in ``fl``)
  - RUPEEZY  — public option chain (``response.optionData``, YYYYMMDD
               expiries, paise-scaled strike / spot, LTP snapshot by token)
  - ZERODHA  — Kite instrument master + quotes (depth-based bid / ask);
               the instrument master comes from an injected ``TTLCache``

Usage:
    from src.signals_lib.options.sources import normalize_chain

    chain = normalize_chain(RawChainPayload("DHAN", raw), now=now)
    if chain is None:
        ...  # source unavailable; fall back
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from src.signals_lib.core.cache import TTL_INSTRUMENTS, TTLCache
from src.signals_lib.core.config import ChainConfig
from src.signals_lib.core.errors import MalformedLeg, SourceUnavailable
from src.signals_lib.core.models import (
    NormalizedChain,
    OptionChainRow,
    OptionType,
    RawChainPayload,
)
from src.signals_lib.options.chain import (
    IST,
    LegParser,
    OptionChainSource,
    assemble_chain,
    make_leg,
    select_expiry,
    to_number,
    today_for,
)

logger = logging.getLogger("option_sources")


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _iso_from_yyyymmdd(value: Any) -> Optional[str]:
    digits = "".join(ch for ch in _text(value) if ch.isdigit())
    if len(digits) != 8:
        return None
    try:
        return date(int(digits[:4]), int(digits[4:6]), int(digits[6:])).isoformat()
    except ValueError:
        return None


def _iso_from_any(value: Any) -> Optional[str]:
    """Accept ``date`` / ``datetime`` / ISO string / YYYYMMDD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _text(value)
    if len(text) >= 10 and text[4] == "-" and text[7] == "-":
        return text[:10]
    return _iso_from_yyyymmdd(text)


# ---------------------------------------------------------------------------
# Dhan
# ---------------------------------------------------------------------------

# Dhan counts expiry seconds from this epoch
DHAN_EPOCH = datetime(1980, 1, 1, tzinfo=IST)


def dhan_expiry_to_iso(value: Any) -> Optional[str]:
    try:
        seconds = to_number(value, "explst")
    except MalformedLeg:
        return None
    return (DHAN_EPOCH + timedelta(seconds=seconds)).astimezone(IST).date().isoformat()


class DhanSource(OptionChainSource):
    tag = "DHAN"

    def normalize(self, raw: dict[str, Any], now: datetime) -> NormalizedChain:
        data = raw.get("data", raw) if isinstance(raw, dict) else None
        if not isinstance(data, dict) or not isinstance(data.get("oc"), dict):
            raise SourceUnavailable(self.tag, "payload has no 'oc' strike map")

        parser = LegParser(self.tag)
        expiries = [e for e in (dhan_expiry_to_iso(v) for v in data.get("explst") or []) if e]
        selected = select_expiry(expiries, today_for(now))

        lot_size = int(parser.number(data.get("olot"), "olot")) or 1
        spot = parser.number(data.get("sltp"), "sltp")
        tick = parser.optional(data.get("otick"), "otick")

        rows = []
        for strike_key, value in data["oc"].items():
            try:
                strike = to_number(strike_key, "strike")
            except MalformedLeg as exc:
                logger.debug("Dhan: skipping strike %s", exc)
                continue
            if strike <= 0 or not isinstance(value, dict):
                continue
            ce = value.get("ce")
            pe = value.get("pe")
            rows.append(
                OptionChainRow(
                    strike=strike,
                    ce=self._leg(ce, OptionType.CE, strike, lot_size, selected, tick, parser)
                    if isinstance(ce, dict)
                    else None,
                    pe=self._leg(pe, OptionType.PE, strike, lot_size, selected, tick, parser)
                    if isinstance(pe, dict)
                    else None,
                )
            )

        future_symbol, future_ltp = self._nearest_future(data.get("fl"))
        underlying = spot if spot > 0 else future_ltp

        return assemble_chain(
            self.tag,
            rows,
            available_expiries=expiries,
            selected_expiry=selected,
            underlying_price=underlying,
            future_symbol=future_symbol,
            issues=parser.issues,
            config=self.config,
        )

    def _leg(self, leg, option_type, strike, lot_size, expiry, tick, parser):
        where = {"strike": strike, "option_type": option_type.value}
        greeks = leg.get("optgeeks") if isinstance(leg.get("optgeeks"), dict) else {}
        symbol = _text(leg.get("disp_sym")) or _text(leg.get("sym"))
        return make_leg(
            trading_symbol=symbol or f"{strike:g}{option_type.value}",
            instrument_id=int(parser.number(leg.get("sid"), "sid", **where)),
            option_type=option_type,
            strike=strike,
            expiry=expiry or "",
            lot_size=lot_size,
            last_price=parser.number(leg.get("ltp"), "ltp", **where),
            open_interest=parser.number(leg.get("OI"), "OI", **where),
            volume=parser.number(leg.get("vol"), "vol", **where),
            bid=parser.optional(leg.get("bp"), "bp", **where),
            ask=parser.optional(leg.get("ap"), "ap", **where),
            delta=parser.optional(greeks.get("delta"), "delta", **where),
            theta=parser.optional(greeks.get("theta"), "theta", **where),
            iv=parser.optional(leg.get("iv"), "iv", **where),
            tick=tick,
            config=self.config,
        )

    @staticmethod
    def _nearest_future(fl: Any) -> tuple[Optional[str], Optional[float]]:
        if not isinstance(fl, dict) or not fl:
            return None, None
        items = []
        for item in fl.values():
            if not isinstance(item, dict):
                continue
            symbol = _text(item.get("disp_sym")) or _text(item.get("sym")) or None
            try:
                ltp: Optional[float] = to_number(item.get("ltp"), "ltp") or None
            except MalformedLeg:
                ltp = None
            key = float("inf")
            for field_name in ("daystoexp", "expdate"):
                try:
                    key = to_number(item.get(field_name), field_name) or key
                except MalformedLeg:
                    continue
                if key != float("inf"):
                    break
            if symbol or ltp is not None:
                items.append((key, symbol, ltp))
        if not items:
            return None, None
        items.sort(key=lambda t: t[0])
        return items[0][1], items[0][2]


# ---------------------------------------------------------------------------
# Rupeezy
# ---------------------------------------------------------------------------


class RupeezySource(OptionChainSource):
    tag = "RUPEEZY"

    def _price(self, parser: LegParser, raw: Any, field_name: str, **where) -> float:
        """Positive price with the paise scaling undone (0 when unusable)."""
        if raw is None:
            return 0.0
        value = parser.number(raw, field_name, **where)
        if value <= 0:
            return 0.0
        if value > self.config.paise_scale_threshold:
            return value / 100
        return value

    def normalize(self, raw: dict[str, Any], now: datetime) -> NormalizedChain:
        status = _text(raw.get("status")).lower()
        payload = raw.get("response")
        if (status and status != "success") or not isinstance(payload, dict):
            raise SourceUnavailable(self.tag, _text(raw.get("message")) or "invalid response")

        parser = LegParser(self.tag)
        expiries = [e for e in (_iso_from_yyyymmdd(v) for v in payload.get("expDates") or []) if e]
        selected = _iso_from_yyyymmdd(payload.get("curExpDate")) or select_expiry(
            expiries, today_for(now)
        )

        commodity = raw.get("commodity") if isinstance(raw.get("commodity"), dict) else {}
        parent = (
            payload.get("parentStockData")
            if isinstance(payload.get("parentStockData"), dict)
            else {}
        )
        spot_raw = commodity.get("ltp")
        if spot_raw is None:
            spot_raw = parent.get("livePrice")
        underlying = self._price(parser, spot_raw, "livePrice")
        future_symbol = (
            _text(commodity.get("security_desc")) or _text(parent.get("symbol")) or None
        )

        snapshots: dict[int, dict[str, Any]] = {}
        for item in raw.get("ltps") or []:
            if not isinstance(item, dict):
                continue
            try:
                token = int(to_number(item.get("scrip_token"), "scrip_token"))
            except MalformedLeg:
                continue
            if token > 0:
                snapshots[token] = item

        rows = []
        for entry in payload.get("optionData") or []:
            if not isinstance(entry, dict):
                continue
            ce = entry.get("CE") if isinstance(entry.get("CE"), dict) else None
            pe = entry.get("PE") if isinstance(entry.get("PE"), dict) else None
            strike_raw = entry.get("strikePrice")
            if strike_raw is None:
                strike_raw = (ce or pe or {}).get("strikePrice")
            strike = self._price(parser, strike_raw, "strikePrice")
            if strike <= 0:
                continue
            rows.append(
                OptionChainRow(
                    strike=strike,
                    ce=self._leg(ce, OptionType.CE, strike, selected, snapshots, parser)
                    if ce
                    else None,
                    pe=self._leg(pe, OptionType.PE, strike, selected, snapshots, parser)
                    if pe
                    else None,
                )
            )

        return assemble_chain(
            self.tag,
            rows,
            available_expiries=expiries,
            selected_expiry=selected,
            underlying_price=underlying,
            future_symbol=future_symbol,
            issues=parser.issues,
            config=self.config,
        )

    def _leg(self, leg, option_type, strike, selected, snapshots, parser):
        where = {"strike": strike, "option_type": option_type.value}
        token = int(parser.number(leg.get("token"), "token", **where))
        snap = snapshots.get(token, {})
        greeks = leg.get("greeks") if isinstance(leg.get("greeks"), dict) else {}
        lot = parser.optional(leg.get("lotSize"), "lotSize", **where)
        return make_leg(
            trading_symbol=_text(leg.get("securityDesc")) or f"{strike:g}{option_type.value}",
            instrument_id=token,
            option_type=option_type,
            strike=strike,
            expiry=_iso_from_yyyymmdd(leg.get("expYYYYMMDD")) or selected or "",
            lot_size=int(lot) if lot and lot > 0 else self.config.default_lot_size,
            last_price=parser.first("ltp", snap.get("ltp"), leg.get("ltp"), **where),
            open_interest=parser.first(
                "openInterest", snap.get("open_interest"), leg.get("openInterest"), **where
            ),
            volume=parser.first(
                "volume", snap.get("total_quantity_traded"), leg.get("volume"), **where
            ),
            delta=parser.optional(greeks.get("delta"), "delta", **where),
            theta=parser.optional(greeks.get("theta"), "theta", **where),
            iv=parser.optional(greeks.get("iv"), "iv", **where),
            config=self.config,
        )


# ---------------------------------------------------------------------------
# Zerodha
# ---------------------------------------------------------------------------

InstrumentLoader = Callable[[str], list[dict[str, Any]]]


class ZerodhaSource(OptionChainSource):
    """Kite instruments + quotes.

    The instrument master (tens of thousands of rows) is cached per exchange
    in ``instrument_cache``.  On a miss it is loaded with
    ``instrument_loader(exchange)`` or, failing that, taken from the
    payload's own ``instruments`` list.
    """

    tag = "ZERODHA"

    def __init__(
        self,
        config: Optional[ChainConfig] = None,
        instrument_cache: Optional[TTLCache] = None,
        instrument_loader: Optional[InstrumentLoader] = None,
    ):
        super().__init__(config)
        if instrument_cache is None:
            instrument_cache = TTLCache(ttl=TTL_INSTRUMENTS)
        self.instrument_cache = instrument_cache
        self.instrument_loader = instrument_loader

    def _instruments(self, exchange: str, raw: dict[str, Any]) -> list[dict[str, Any]]:
        def load() -> list[dict[str, Any]]:
            if self.instrument_loader is not None:
                return list(self.instrument_loader(exchange))
            bundled = raw.get("instruments")
            if not bundled:
                raise SourceUnavailable(self.tag, f"no instrument master for {exchange}")
            return list(bundled)

        return self.instrument_cache.get_or_load(exchange, load)

    @staticmethod
    def _quote_for(quotes: Mapping[str, Any], inst: dict[str, Any]) -> dict[str, Any]:
        for key in (
            f"{inst.get('exchange')}:{inst.get('tradingsymbol')}",
            _text(inst.get("instrument_token")),
            _text(inst.get("exchange_token")),
        ):
            quote = quotes.get(key)
            if isinstance(quote, dict):
                return quote
        return {}

    def normalize(self, raw: dict[str, Any], now: datetime) -> NormalizedChain:
        exchange = _text(raw.get("exchange") or "MCX").upper()
        underlying = _text(raw.get("underlying") or "NATURALGAS").upper()
        quotes = raw.get("quotes") if isinstance(raw.get("quotes"), dict) else {}
        today = today_for(now)

        def matches(inst: dict[str, Any], kinds: tuple[str, ...]) -> bool:
            return (
                _text(inst.get("exchange")).upper() == exchange
                and inst.get("instrument_type") in kinds
                and _text(inst.get("tradingsymbol")).upper().startswith(underlying)
            )

        instruments = [i for i in self._instruments(exchange, raw) if isinstance(i, dict)]
        options = [i for i in instruments if matches(i, ("CE", "PE"))]
        futures = sorted(
            (i for i in instruments if matches(i, ("FUT",)) and _iso_from_any(i.get("expiry"))),
            key=lambda i: _iso_from_any(i.get("expiry")),
        )

        expiries = sorted({e for e in (_iso_from_any(o.get("expiry")) for o in options) if e})
        requested = _iso_from_any(raw.get("expiry"))
        selected = requested if requested in expiries else select_expiry(expiries, today)
        if selected:
            options = [o for o in options if _iso_from_any(o.get("expiry")) == selected]

        future = None
        if futures:
            live = [f for f in futures if _iso_from_any(f.get("expiry")) >= today.isoformat()]
            future = (live or futures)[0]

        parser = LegParser(self.tag)
        future_ltp = None
        if future is not None:
            future_ltp = parser.optional(
                self._quote_for(quotes, future).get("last_price"), "future_last_price"
            )

        by_strike: dict[float, dict[str, Any]] = {}
        for inst in options:
            try:
                strike = to_number(inst.get("strike"), "strike")
            except MalformedLeg:
                continue
            option_type = OptionType(inst["instrument_type"])
            quote = self._quote_for(quotes, inst)
            depth = quote.get("depth") if isinstance(quote.get("depth"), dict) else {}
            best_bid = (depth.get("buy") or [{}])[0] or {}
            best_ask = (depth.get("sell") or [{}])[0] or {}
            where = {"strike": strike, "option_type": option_type.value}
            leg = make_leg(
                trading_symbol=_text(inst.get("tradingsymbol")),
                instrument_id=int(parser.number(inst.get("instrument_token"), "instrument_token", **where)),
                option_type=option_type,
                strike=strike,
                expiry=_iso_from_any(inst.get("expiry")) or "",
                lot_size=int(parser.number(inst.get("lot_size"), "lot_size", **where))
                or self.config.default_lot_size,
                last_price=parser.number(quote.get("last_price"), "last_price", **where),
                open_interest=parser.number(quote.get("oi"), "oi", **where),
                volume=parser.number(quote.get("volume"), "volume", **where),
                bid=parser.optional(best_bid.get("price"), "bid", **where),
                ask=parser.optional(best_ask.get("price"), "ask", **where),
                tick=parser.optional(inst.get("tick_size"), "tick_size", **where),
                config=self.config,
            )
            by_strike.setdefault(strike, {})[option_type.value] = leg

        rows = [
            OptionChainRow(strike=strike, ce=legs.get("CE"), pe=legs.get("PE"))
            for strike, legs in by_strike.items()
        ]

        return assemble_chain(
            self.tag,
            rows,
            available_expiries=expiries,
            selected_expiry=selected,
            underlying_price=future_ltp,
            future_symbol=_text(future.get("tradingsymbol")) if future else None,
            issues=parser.issues,
            config=self.config,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

SOURCE_ADAPTERS: dict[str, type[OptionChainSource]] = {
    DhanSource.tag: DhanSource,
    RupeezySource.tag: RupeezySource,
    ZerodhaSource.tag: ZerodhaSource,
}


def default_sources(config: Optional[ChainConfig] = None) -> dict[str, OptionChainSource]:
    return {tag: cls(config) for tag, cls in SOURCE_ADAPTERS.items()}


def normalize_chain(
    payload: Optional[RawChainPayload],
    config: Optional[ChainConfig] = None,
    now: Optional[datetime] = None,
    sources: Optional[Mapping[str, OptionChainSource]] = None,
) -> Optional[NormalizedChain]:
    """Normalize one source-tagged payload; None when the source is unavailable.

    Never raises for a bad payload: missing data, an unknown tag or any
    adapter failure is logged as ``SourceUnavailable`` and absorbed so the
    caller can fall back to the next source.
    """
    adapters = sources if sources is not None else default_sources(config)
    try:
        if payload is None:
            raise SourceUnavailable("UNKNOWN", "no payload")
        tag = payload.source.upper()
        if payload.data is None:
            raise SourceUnavailable(tag, "no data")
        adapter = adapters.get(tag)
        if adapter is None:
            raise SourceUnavailable(tag, "no adapter registered")
        try:
            chain = adapter.normalize(payload.data, now or datetime.now(IST))
        except SourceUnavailable:
            raise
        except Exception as exc:
            raise SourceUnavailable(tag, f"{type(exc).__name__}: {exc}") from exc
    except SourceUnavailable as exc:
        logger.warning("Option chain source unavailable: %s", exc)
        return None

    if chain.issues:
        logger.info("%s chain: %d field(s) defaulted to 0", chain.source, len(chain.issues))
    return chain
