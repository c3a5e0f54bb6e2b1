"""Rule tables for junk filtering and cross-category detection.

The tables are plain data so new retailers or brands only need new rows:

* IEM vs headphone: headphone-only brands, per-brand model patterns and
  name indicators, checked in that order.
* Cable sub-categories: ``cable``, ``iem_cable`` and ``hp_cable``.
* Speaker cleanup, DAP overrides and DAC/amp consolidation.
* Microphone exclusions with a guard list of genuine microphone wording.
* Placeholder titles, marketplace noise and explicit misplaced overrides.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Pattern, Sequence, Tuple

from .normalizer import normalize


def _compile(*patterns: str, flags: int = re.I) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern, flags) for pattern in patterns)


def _brands(*names: str) -> FrozenSet[str]:
    return frozenset(normalize(name) for name in names)


CATEGORIES = (
    "iem",
    "headphone",
    "cable",
    "iem_cable",
    "hp_cable",
    "iem_tips",
    "dac",
    "amp",
    "dap",
    "speaker",
    "microphone",
)

# IEM vs headphone

HEADPHONE_ONLY_BRANDS = _brands(
    "stax",
    "zmf",
    "dan clark audio",
    "dca",
    "mrspeakers",
    "abyss",
    "kennerton",
    "sendy audio",
    "t+a",
    "hedd",
    "raal",
    "raal-requisite",
)

# STAX SR-001/002/003 are in-ear electrostatics
HEADPHONE_BRAND_IEM_EXCEPTIONS = _compile(r"\bSR[\s-]?00[123]")


@dataclass(frozen=True)
class BrandModelRule:
    brand: str
    headphone_patterns: Sequence[Pattern[str]]
    iem_patterns: Sequence[Pattern[str]]


BRAND_MODEL_RULES: Tuple[BrandModelRule, ...] = (
    BrandModelRule(
        "sennheiser",
        _compile(r"\bHD[\s-]?\d", r"\bHE[\s-]?\d", r"\bMomentum\s*[34]", r"\bPX[\s-]?1\d\d", r"\bGSP"),
        _compile(r"\bIE[\s-]?\d", r"\bMomentum\s*(True|Sport|In)"),
    ),
    BrandModelRule(
        "beyerdynamic",
        _compile(r"\bDT[\s-]?\d+\w*(?!\s*IE)\b", r"\bAventho", r"\bCustom\s+One\s+Pro",
                 r"\bT[\s-]?[15]\s", r"\bAmiron"),
        _compile(r"\bDT[\s-]?\d+\w*\s*IE\b", r"\bXelento", r"\bByrd", r"\bBlue\s*Byrd"),
    ),
    BrandModelRule(
        "audio-technica",
        _compile(
            r"\bATH[\s-]?M\d", r"\bATH[\s-]?R\d", r"\bATH[\s-]?AD\d", r"\bATH[\s-]?A\d",
            r"\bATH[\s-]?W\d", r"\bBPHS", r"\bATH[\s-]?HP", r"\bATH[\s-]?WP",
        ),
        _compile(r"\bATH[\s-]?E\d", r"\bATH[\s-]?CK", r"\bATH[\s-]?LS", r"\bATH[\s-]?IM", r"\bATH[\s-]?IEX"),
    ),
    BrandModelRule(
        "hifiman",
        _compile(
            r"\bHE[\s-]?\d", r"\bSusvara", r"\bArya", r"\bAnanda", r"\bSundara", r"\bDeva",
            r"\bEdition", r"\bAudivina", r"\bJade", r"\bShangri", r"\bIsvarna",
        ),
        _compile(r"\bRE[\s-]?\d", r"\bSvanar"),
    ),
    BrandModelRule(
        "audeze",
        _compile(r"\bLCD[\s-]?[2345X](?![\s-]*i)", r"\bMM[\s-]?\d", r"\bCRBN", r"\bMaxwell"),
        _compile(r"\bLCD[\s-]?i", r"\biSINE", r"\bEuclid"),
    ),
    BrandModelRule(
        "meze",
        _compile(r"\b99\b", r"\b109\b", r"\bEmpyrean", r"\bElite\b", r"\bLiric", r"\bPOET"),
        _compile(r"\bRAI", r"\bAdvar", r"\bAlba"),
    ),
    BrandModelRule(
        "grado",
        _compile(r"\bSR[\s-]?\d", r"\bRS[\s-]?\d", r"\bGS[\s-]?\d", r"\bPS[\s-]?\d", r"\bGH[\s-]?\d", r"\bHemp"),
        _compile(r"\bGR[\s-]?\d", r"\biGe", r"\bGT\d"),
    ),
    BrandModelRule(
        "sony",
        _compile(
            r"\bWH[\s-]", r"\bMDR[\s-]?Z", r"\bMDR[\s-]?M\d", r"\bMDR[\s-]?7506",
            r"\bMDR[\s-]?CD", r"\bMDR[\s-]?SA", r"\bMDR[\s-]?H", r"\bULT\s*WEAR",
        ),
        _compile(r"\bWF[\s-]", r"\bIER[\s-]", r"\bXBA[\s-]", r"\bMDR[\s-]?EX"),
    ),
    BrandModelRule(
        "focal",
        _compile(
            r"\bElear", r"\bUtopia(?!\s*Go)", r"\bClear", r"\bElegia", r"\bStellia",
            r"\bCelestee", r"\bRadiance", r"\bBathys", r"\bHadenys", r"\bAzurys", r"\bListen",
        ),
        _compile(r"\bSphear", r"\bSpark", r"\bUtopia\s*Go"),
    ),
    BrandModelRule(
        "shure",
        _compile(r"\bSRH[\s-]?\d", r"\bAONIC\s*50"),
        _compile(r"\bSE[\s-]?\d", r"\bKSE[\s-]?\d", r"\bAONIC\s*[345]\b"),
    ),
    BrandModelRule(
        "final",
        _compile(r"\bD8000", r"\bSonorous", r"\bUX[\s-]?\d"),
        _compile(r"\b[EABF]\d{3,}", r"\bZE[\s-]?\d", r"\bAdagio"),
    ),
    BrandModelRule(
        "fiio",
        _compile(r"\bFT[\s-]?\d", r"\bJT[\s-]?\d", r"\bWind", r"\bSNOWSKY"),
        _compile(r"\bFH[\s-]?\d", r"\bFD[\s-]?\d", r"\bFA[\s-]?\d", r"\bFX[\s-]?\d",
                 r"\bFW[\s-]?\d", r"\bJD[\s-]?\d", r"\bJH[\s-]?\d"),
    ),
    BrandModelRule(
        "fostex",
        _compile(r"\bTH[\s-]?\d", r"\bT\d+RP"),
        _compile(r"\bTE[\s-]?\d"),
    ),
    BrandModelRule(
        "philips",
        _compile(r"\bFidelio\b", r"\bSHP[\s-]?\d", r"\bTAH[\s-]?\d"),
        _compile(r"\bSHE[\s-]?\d", r"\bTAT[\s-]?\d"),
    ),
    BrandModelRule(
        "denon",
        _compile(r"\bAH[\s-]?D\d", r"\bD\d{4}"),
        _compile(r"\bPerl", r"\bAH[\s-]?C"),
    ),
    BrandModelRule(
        "koss",
        _compile(r"\bESP", r"\bPortaPro", r"\bKPH[\s-]?\d", r"\bKSC[\s-]?\d", r"\bPro[\s-]?4"),
        _compile(r"\bKEB[\s-]?\d", r"\bKE[\s-]?5", r"\bPlug"),
    ),
)

BRAND_RULES: Dict[str, BrandModelRule] = {normalize(rule.brand): rule for rule in BRAND_MODEL_RULES}

HEADPHONE_NAME_INDICATORS = _compile(
    r"\bover[\s-]?ear\b",
    r"\bon[\s-]?ear\b",
    r"\bheadphones?\b(?!.*\bin[\s-]?ear)(?!.*\bzone\b)",
    r"\bheadband\b",
    r"\bcircumaural\b",
    r"\bsupra[\s-]?aural\b",
)

# only counted when no GUARDED_INDICATOR_BLOCKERS match
HEADPHONE_NAME_INDICATORS_GUARDED = _compile(
    r"\bopen[\s-]?back\b",
    r"\bclosed[\s-]?back\b",
    r"\bfull[\s-]?size\b",
)

GUARDED_INDICATOR_BLOCKERS = _compile(r"\bearbud", r"\bearphone", r"\bshell\b", r"\bin[\s-]?ear\b") + _compile(
    r"\bIEM\b", flags=0
)

IEM_NAME_INDICATORS = _compile(
    r"\bin[\s-]?ear\b",
    r"\bearphones?\b",
    r"\bearbuds?\b",
    r"\bTWS\b",
    r"\btrue[\s-]?wireless\b",
    r"\btruly[\s-]?wireless\b",
) + _compile(r"\bIEMs?\b", flags=0)

# Cable sub-categories

IEM_CABLE_BRANDS = _brands(
    "dunu", "hakugei", "kinera", "trn", "nicehck", "tripowin", "kbear", "xinhs", "linsoul",
    "yongse", "jcally", "isn", "yinyoo", "bgvp", "aful", "softears", "hisenior",
)

IEM_CABLE_INDICATORS = _compile(
    r"\b2[\s-]?pin\b",
    r"\bMMCX\b",
    r"\bQDC\b",
    r"\b0\.78\s*mm\b",
    r"\bIEM\b.*\bcable\b",
    r"\bcable\b.*\bIEM\b",
    r"\bearphone\s+(cable|upgrade)\b",
    r"\b(cable|upgrade)\b.*\bearphone\b",
    r"\bin[\s-]?ear\b.*\bcable\b",
    r"\bFiiO\b.*\bLS[\s-]?\d",
    r"\bMoondrop\b.*\b(cable|Line\s*K|PCC|MC1)\b",
    r"\bShanling\b.*\bEL\d",
)

HP_CABLE_INDICATORS = _compile(
    r"\bheadphone\s+(cable|upgrade)\b",
    r"\b(cable|upgrade)\b.*\bheadphone\b",
    r"\bfor\s+(HD[\s-]?\d|LCD|Audeze|Sennheiser|Focal|HiFiMAN|Beyerdynamic|ZMF|DCA|Dan\s+Clark)",
    r"\b(HD800|HD650|HD600|HD580|HD660|LCD[\s-]?[2345X]|Arya|Sundara|Susvara|TH900|T60RP|T50RP)\b",
    r"\b(mini[\s-]?XLR|4[\s-]?pin\s+XLR)\b.*\b(cable|headphone)\b",
    r"\bDekoni\b.*\bcable\b",
)

GENERAL_CABLE_INDICATORS = _compile(
    r"\binterconnect\b",
    r"\bpower\s+c(able|ord)\b",
    r"\bspeaker\s+(cable|wire)\b",
    r"\bUSB[\s-]?(A|B|C)\b.*\bcable\b",
    r"\bcable\b.*\bUSB[\s-]?(A|B|C)\b",
    r"\bOTG\b",
    r"\bcoaxial\b",
    r"\boptical\b",
    r"\bToslink\b",
    r"\bRCA\b.*\bcable\b",
)

CABLE_CATEGORIES = frozenset({"cable", "iem_cable", "hp_cable"})

# Speakers

SPEAKER_GUARD_INDICATORS = _compile(
    r"\bbookshelf\b",
    r"\btower\b",
    r"\bfloor[\s-]?standing\b",
    r"\bsubwoofer\b",
    r"\bsound[\s-]?bar\b",
    r"\bloudspeakers?\b",
    r"\bspeakers?\b(?!\s+(cable|wire))",
    r"\bmonitor\b",
    r"\bwoofer\b",
    r"\b(2|3)[\s-]?way\b",
)

SPEAKER_TO_CABLE_INDICATORS = _compile(r"\bcables?\b", r"\binterconnects?\b", r"\bwires?\b")

# DAP / DAC / amp

DAP_PRODUCT_OVERRIDES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\bTechnics\s+SC[\s-]?CX700\b", re.I), "speaker"),
    (re.compile(r"\bTechnics\s+SU[\s-]?G700", re.I), "amp"),
    (re.compile(r"\bBryston\s+BDA[\s-]?3\.14\b", re.I), "dac"),
)

DAC_INDICATORS = _compile(r"\bDAC\w*", flags=0) + _compile(
    r"\bdigital[\s-]?to[\s-]?analog\b",
    r"\bconverter\b",
    r"\bR2R\b",
)

# Microphones

MICROPHONE_JUNK_INDICATORS = _compile(
    r"\bkaraoke\b",
    r"\bportable\s+(bluetooth\s+)?speaker\b",
    r"\bsound[\s-]?bar\b",
    r"\b(mic(rophone)?|boom)\s+(arm|boom|stand)\b",
    r"\bboom\s+arm\b",
    r"\baudio\s+(interface|mixer)\b",
    r"\bmicrophone\s+handle\b",
    r"\bmic(rophone)?\s+adapter\b",
    r"\bshock\s*mount\b",
    r"\bpop\s+(filter|shield)\b",
    r"\bwindscreen\b",
    r"\bphantom\s+power\s+(supply|adapter)\b",
    r"\b(mic|inline)\s+preamp\b",
    r"\b(di|direct)\s+box\b",
    r"\bcloudlifter\b",
    r"\bheadphone\b",
    r"\bin[\s-]?ear\s+monitor\b",
    r"\b(mic|XLR|microphone)\s+cable\b",
    r"\b(carrying|flight|storage)\s+case\b",
    r"\bstudio\s+monitor\b",
    r"\bspeaker\b",
    r"\bgift\s+card\b",
    r"\bservice\s+fee",
)

MICROPHONE_GUARD_INDICATORS = _compile(
    r"\b(condenser|dynamic|ribbon)\s+mic",
    r"\bUSB\s+(condenser\s+)?mic",
    r"\bXLR\s+(condenser\s+|dynamic\s+)?mic",
    r"\b(studio|recording|streaming|vocal|broadcast)\s+mic",
    r"\bpodcast(ing)?\s+mic",
    r"\blavalier\b",
    r"\bshotgun\s+mic",
    r"\bwireless\s+mic(rophone)?\s+(system|kit|set)\b",
    r"\b(large|small)[\s-]?diaphragm\b",
)

# Junk and explicit overrides

JUNK_PRODUCT_PATTERNS = _compile(
    r"^DAC\s+Test\b",
    r"\bTest\s+DAC\s+Test\b",
    r"^Test\s+Reference$",
    r"^(test|sample|placeholder|dummy)(\s+product)?$",
)

MARKETPLACE_JUNK_PATTERNS = _compile(
    r"\b(copy|replica|clone|fake|imitation)\b",
    r"\bcase\s+only\b",
    r"\bsilicone\s+(cover|case|sleeve)\b",
    r"\bscreen\s+protector\b",
    r"\bwholesale\b",
    r"\blot\s+of\s+\d+\b",
    r"\bhearing\s+aid\b",
    r"\bsmart\s*watch\b",
)

MISPLACED_OVERRIDES: Tuple[Tuple[Pattern[str], str, str], ...] = (
    (re.compile(r"\biFi\s+GO\s+pod\b(?!.*\b(Ear\s+Loop|Connector|Accessori|Case|Tip|Hook))", re.I), "iem", "dac"),
    (re.compile(r"\bMoondrop\s+RAYS\s+Cable\b", re.I), "iem", "iem_cable"),
    (re.compile(r"\b(Collection\s+Tips|Tips\s+Collection)\b", re.I), "iem", "iem_tips"),
    (re.compile(r"\bddHiFi\b.*\bIEM\s+Cable\b", re.I), "dac", "iem_cable"),
    (re.compile(r"\b3\.5mm\s+to\s+4\.4mm\s+Headphone\s+Adapter\b", re.I), "dac", "cable"),
    (re.compile(r"\b(Storage|Carrying)\s+Case\b", re.I), "headphone", "cable"),
    (re.compile(r"\bInterspeaker\s+Cable\b", re.I), "headphone", "cable"),
)

MIN_TITLE_LENGTH = 3

ALLOWED_DEPARTMENTS = frozenset(
    {
        "electronics",
        "headphones",
        "over-ear headphones",
        "on-ear headphones",
        "in-ear headphones",
        "earbud headphones",
        "headphone amplifiers",
        "portable headphone amps",
        "audio & video accessories",
        "home audio",
        "portable audio & video",
        "professional audio",
        "microphones",
        "musical instruments",
        "computers & accessories",
        "cell phones & accessories",
    }
)

MARKETPLACE_ID_RE = re.compile(r"^B0[A-Z0-9]{8,}$", re.I)
ISBN10_RE = re.compile(r"^\d{9}[\dXx]$")
ISBN13_RE = re.compile(r"^\d{13}$")
