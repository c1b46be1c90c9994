from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterator, Literal, Optional, Union
import xml.etree.ElementTree as ET

from mendozabike.errors import MalformedRecord, StaticDataUnavailable
from mendozabike.schemas.core import BikePath, PathVertex, RepairPoint
from mendozabike.utils.geo import polyline_length_m


logger = logging.getLogger(__name__)


DocumentKind = Literal["paths", "points"]
KmlRecord = Union[BikePath, RepairPoint]

# Keys are matched case-insensitively against ExtendedData `Data`/`SimpleData` names.
PATH_NAME_KEYS = ("nombre", "name", "ciclovia")
DEPARTMENT_KEYS = ("departamento", "departamen", "depto", "department", "municipio")
LENGTH_KEYS = ("longitud", "long_m", "length_m", "length", "shape_leng")

UNNAMED_PATH = "Ciclovía sin nombre"
UNNAMED_POINT = "Punto de reparación"


def local_name(tag: object) -> str:
    # "{http://www.opengis.net/kml/2.2}Placemark" -> "Placemark"
    text = str(tag)
    return text.rsplit("}", 1)[-1]


def children(elem: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in elem:
        if local_name(child.tag) == name:
            yield child


def descend(elem: ET.Element, *names: str) -> Optional[ET.Element]:
    """
    Follow a path of child names, ignoring XML namespaces.

    Backtracks across siblings with the same name, so `descend(pm, "Point", "coordinates")`
    finds the first `Point` that actually has coordinates.
    """

    if not names:
        return elem
    head, rest = names[0], names[1:]
    for child in children(elem, head):
        found = descend(child, *rest)
        if found is not None:
            return found
    return None


def text_at(elem: ET.Element, *names: str) -> Optional[str]:
    node = descend(elem, *names)
    if node is None or node.text is None:
        return None
    text = node.text.strip()
    return text or None


def iter_named(elem: ET.Element, name: str) -> Iterator[ET.Element]:
    # Document order, at any depth (Placemarks may sit inside nested Folders).
    for node in elem.iter():
        if local_name(node.tag) == name:
            yield node


def require_float(text: Optional[str], *, field: str) -> float:
    if text is None or not text.strip():
        raise MalformedRecord(f"Missing {field}")
    try:
        value = float(text)
    except ValueError as exc:
        raise MalformedRecord(f"{field} is not numeric: {text!r}") from exc
    if not math.isfinite(value):
        raise MalformedRecord(f"{field} is not finite: {text!r}")
    return value


def extended_data(placemark: ET.Element) -> dict[str, str]:
    """
    Flatten `<ExtendedData>` into a lower-cased key -> text mapping.

    Supports both `<Data name="..."><value>..</value></Data>` and
    `<SchemaData><SimpleData name="...">..</SimpleData></SchemaData>`.
    """

    out: dict[str, str] = {}
    for ext in children(placemark, "ExtendedData"):
        for data in iter_named(ext, "Data"):
            key = data.get("name")
            value = text_at(data, "value")
            if key and value is not None:
                out.setdefault(key.strip().lower(), value)
        for data in iter_named(ext, "SimpleData"):
            key = data.get("name")
            value = (data.text or "").strip()
            if key and value:
                out.setdefault(key.strip().lower(), value)
    return out


def _first_key(data: dict[str, str], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        if data.get(key):
            return data[key]
    return None


def parse_coordinate_tuple(token: str) -> PathVertex:
    # KML tuples are "lon,lat[,alt]".
    parts = [p for p in token.split(",") if p.strip()]
    if len(parts) < 2:
        raise MalformedRecord(f"Coordinate tuple needs lon,lat: {token!r}")
    lon = require_float(parts[0], field="longitude")
    lat = require_float(parts[1], field="latitude")
    return PathVertex(lat=lat, lon=lon)


def parse_coordinate_list(text: Optional[str]) -> list[PathVertex]:
    # Bad tuples are dropped one by one; the rest of the line survives.
    out: list[PathVertex] = []
    if not text:
        return out
    for token in text.split():
        try:
            out.append(parse_coordinate_tuple(token))
        except MalformedRecord as exc:
            logger.debug("Dropping coordinate: %s", exc)
    return out


def _parse_root(text: Union[str, bytes], *, source: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise StaticDataUnavailable(f"Invalid KML in {source}: {exc}") from exc


def parse_bike_path(placemark: ET.Element) -> BikePath:
    vertices: list[PathVertex] = []
    # Covers both a bare LineString and the parts of a MultiGeometry, in document order.
    for line in iter_named(placemark, "LineString"):
        vertices.extend(parse_coordinate_list(text_at(line, "coordinates")))
    if not vertices:
        raise MalformedRecord("Path has no usable coordinates")

    data = extended_data(placemark)
    name = text_at(placemark, "name") or _first_key(data, PATH_NAME_KEYS) or UNNAMED_PATH
    department = _first_key(data, DEPARTMENT_KEYS) or ""

    length_m: Optional[float] = None
    raw_length = _first_key(data, LENGTH_KEYS)
    if raw_length is not None:
        try:
            length_m = require_float(raw_length.replace(",", "."), field="length")
        except MalformedRecord:
            length_m = None
    if length_m is None or length_m < 0:
        length_m = polyline_length_m((v.lat, v.lon) for v in vertices)

    return BikePath(
        name=name,
        department=department,
        length_m=round(length_m, 1),
        coordinates=tuple(vertices),
    )


def parse_repair_point(placemark: ET.Element) -> RepairPoint:
    coords = text_at(placemark, "Point", "coordinates")
    if coords is None:
        coords = text_at(placemark, "MultiGeometry", "Point", "coordinates")
    if coords is None:
        raise MalformedRecord("Point has no coordinates")
    # Only the first tuple matters for a point; a bad one drops the record.
    vertex = parse_coordinate_tuple(coords.split()[0])

    return RepairPoint(
        name=text_at(placemark, "name") or UNNAMED_POINT,
        description=text_at(placemark, "description") or "",
        lat=vertex.lat,
        lon=vertex.lon,
    )


def parse_bike_paths(text: Union[str, bytes], *, source: str = "<string>") -> list[BikePath]:
    root = _parse_root(text, source=source)
    out: list[BikePath] = []
    total = 0
    for placemark in iter_named(root, "Placemark"):
        total += 1
        try:
            out.append(parse_bike_path(placemark))
        except MalformedRecord as exc:
            logger.debug("Dropping bike path #%s in %s: %s", total, source, exc)
    logger.info("Parsed %d/%d bike paths from %s", len(out), total, source)
    return out


def parse_repair_points(text: Union[str, bytes], *, source: str = "<string>") -> list[RepairPoint]:
    root = _parse_root(text, source=source)
    out: list[RepairPoint] = []
    total = 0
    for placemark in iter_named(root, "Placemark"):
        total += 1
        try:
            out.append(parse_repair_point(placemark))
        except MalformedRecord as exc:
            logger.debug("Dropping repair point #%s in %s: %s", total, source, exc)
    logger.info("Parsed %d/%d repair points from %s", len(out), total, source)
    return out


def parse_document(text: Union[str, bytes], kind: DocumentKind, *, source: str = "<string>") -> list[KmlRecord]:
    if kind == "paths":
        return parse_bike_paths(text, source=source)
    if kind == "points":
        return parse_repair_points(text, source=source)
    raise ValueError(f"Unsupported KML document kind: {kind}")


def load_kml_records(path: Path, kind: DocumentKind) -> list[KmlRecord]:
    """
    Read and parse a static KML file.

    A missing file yields `[]` (logged); an unreadable or invalid file raises
    `StaticDataUnavailable`.
    """

    if not path.exists():
        logger.warning("Static KML not found, serving without it: %s", path)
        return []
    try:
        # Bytes let the XML parser honor the document's own encoding declaration.
        raw = path.read_bytes()
    except OSError as exc:
        raise StaticDataUnavailable(f"Cannot read {path}: {exc}") from exc
    return parse_document(raw, kind, source=str(path))


def load_bike_paths(path: Path) -> list[BikePath]:
    return load_kml_records(path, "paths")


def load_repair_points(path: Path) -> list[RepairPoint]:
    return load_kml_records(path, "points")
