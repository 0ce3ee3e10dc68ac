"""Rule-based care advice from the current weather and the season."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from flowerpots.errors import ValidationError
from flowerpots.util.time import utcnow


PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}

_SEASONS = (
    ((3, 4, 5), "spring", "Spring is the main growing season: a good time to repot and fertilize."),
    ((6, 7, 8), "summer", "Summer heat: provide shade and water more often."),
    ((9, 10, 11), "autumn", "Autumn: gradually reduce fertilizing and prepare plants for winter."),
)
_WINTER = ("winter", "Winter dormancy: water sparingly and keep plants warm.")


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fmt(n: float) -> str:
    return f"{n:g}"


def seasonal_advice(month: int) -> Dict[str, Any]:
    for months, season, text in _SEASONS:
        if month in months:
            return {"type": "seasonal", "advice": text, "priority": "medium", "condition": f"Season: {season}"}
    season, text = _WINTER
    return {"type": "seasonal", "advice": text, "priority": "medium", "condition": f"Season: {season}"}


def care_advice(weather: Mapping[str, Any] | None, *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    if not isinstance(weather, Mapping) or not isinstance(weather.get("current"), Mapping):
        raise ValidationError("Missing weather data")

    current = weather["current"]
    temp = _number(current.get("temp"))
    humidity = _number(current.get("humidity"))

    rain_chance = 0.0
    forecast = weather.get("forecast")
    if isinstance(forecast, list) and forecast and isinstance(forecast[0], Mapping):
        rain_chance = _number(forecast[0].get("rain_chance")) or 0.0

    advice: List[Dict[str, Any]] = []
    if temp is not None and temp > 30:
        advice.append(
            {
                "type": "temperature",
                "advice": "Hot weather: shade your plants and water more often.",
                "priority": "high",
                "condition": f"Current temperature: {_fmt(temp)}°C",
            }
        )
    elif temp is not None and temp < 5:
        advice.append(
            {
                "type": "temperature",
                "advice": "Frost warning: move frost-sensitive plants indoors and water less.",
                "priority": "high",
                "condition": f"Current temperature: {_fmt(temp)}°C",
            }
        )

    if humidity is not None and humidity < 30:
        advice.append(
            {
                "type": "humidity",
                "advice": "Dry air: mist humidity-loving plants.",
                "priority": "medium",
                "condition": f"Current humidity: {_fmt(humidity)}%",
            }
        )

    if rain_chance > 50:
        advice.append(
            {
                "type": "rainfall",
                "advice": "Rain is likely: you can skip some planned watering.",
                "priority": "medium",
                "condition": f"Chance of rain: {_fmt(rain_chance)}%",
            }
        )

    month = (today or utcnow().date()).month
    advice.append(seasonal_advice(month))

    # sort() is stable, so rules keep their order within a priority.
    advice.sort(key=lambda a: PRIORITY_RANK.get(a["priority"], 0), reverse=True)
    return advice
