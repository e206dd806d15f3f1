"""Step-by-step analysis templates handed to agents alongside market tasks."""

import copy

from errors import NotFoundError


def _steps(*steps):
    return [{"step": i, "action": action, "details": list(details)}
            for i, (action, details) in enumerate(steps, start=1)]


WORKFLOW_TEMPLATES = {
    "elon_tweets": {
        "name": "Elon Musk Tweet Analysis",
        "description": "Analyze Elon Musk tweeting patterns and predict tweet counts",
        "steps": _steps(
            ("FETCH @elonmusk profile", [
                "Get current tweet count from profile",
                "Calculate posting pattern last 7 days",
                "Note average tweets/day",
            ]),
            ("CURRENT DATA", [
                "Count current tweets in period",
                "Calculate average rate",
                "Days remaining in market",
                "Project final total",
            ]),
            ("CHECK FOR CATALYSTS", [
                'Search "Elon Musk" on X for upcoming events',
                "SpaceX launches?",
                "Tesla earnings?",
                "DOGE/government news?",
                "If catalyst found, tweet rate could increase",
            ]),
            ("ANALYZE SENTIMENT", [
                'Is Elon in "tweet storm" mode or quiet mode?',
                "Check recent engagement levels",
                "Look for controversial topics he might engage with",
            ]),
            ("FORM PREDICTION", [
                "Calculate projected tweet count",
                "Compare to market ranges",
                "Determine confidence level",
                "Choose direction: YES/NO",
            ]),
        ),
        "data_sources": [
            "@elonmusk profile (X)",
            "Social Blade stats",
            "SpaceX launch calendar",
            "Tesla investor calendar",
        ],
    },
    "price_prediction": {
        "name": "Asset Price Analysis",
        "description": "Analyze asset price movements for yes/no predictions",
        "steps": _steps(
            ("GET CURRENT PRICE", [
                "Fetch current market price",
                "Note 24h/7d/30d price changes",
                "Identify key support/resistance levels",
            ]),
            ("TECHNICAL ANALYSIS", [
                "Check RSI (overbought/oversold)",
                "Look at moving averages",
                "Volume trends",
            ]),
            ("FUNDAMENTAL ANALYSIS", [
                "Recent news/announcements",
                "Upcoming events (earnings, upgrades)",
                "Regulatory news",
            ]),
            ("SENTIMENT CHECK", [
                "X/Twitter sentiment",
                "News sentiment",
                "Fear & Greed index",
            ]),
            ("FORM PREDICTION", [
                "Compare current price to target",
                "Weight technical vs fundamental",
                "Assess probability",
                "Choose direction with confidence",
            ]),
        ),
        "data_sources": [
            "CoinGecko / TradingView",
            "News APIs",
            "X/Twitter search",
            "On-chain data (DeFiLlama, Glassnode)",
        ],
    },
    "political_event": {
        "name": "Political Event Analysis",
        "description": "Analyze political outcomes (elections, policy, etc)",
        "steps": _steps(
            ("BASELINE DATA", [
                "Current polls/predictions",
                "Historical patterns",
                "Aggregate polling data",
            ]),
            ("RECENT DEVELOPMENTS", [
                "News from last 48 hours",
                "Any major announcements",
                "Scandal/controversy check",
            ]),
            ("SENTIMENT ANALYSIS", [
                "X/Twitter sentiment",
                "Pundit opinions",
                "Betting market movements",
            ]),
            ("CROSS-REFERENCE", [
                "Compare multiple polling sources",
                "Look for poll-market divergence",
                "Check prediction market history",
            ]),
            ("FORM PREDICTION", [
                "Weight evidence",
                "Account for uncertainty",
                "Choose direction with confidence",
            ]),
        ),
        "data_sources": [
            "FiveThirtyEight",
            "RealClearPolitics",
            "PredictIt",
            "Official government sources",
            "Major news outlets",
        ],
    },
}

DEFAULT_WORKFLOW = "price_prediction"

# keyword fragments -> workflow, first match wins
WORKFLOW_KEYWORDS = [
    (("elon", "musk", "tweet"), "elon_tweets"),
    (("trump", "biden", "elect", "congress", "senate"), "political_event"),
]


def list_workflows():
    return [{
        "id": wf_id,
        "name": wf["name"],
        "description": wf["description"],
        "steps_count": len(wf["steps"]),
    } for wf_id, wf in WORKFLOW_TEMPLATES.items()]


def get_workflow(workflow_id):
    wf = WORKFLOW_TEMPLATES.get(workflow_id)
    if not wf:
        raise NotFoundError("Workflow not found", available=list(WORKFLOW_TEMPLATES))
    return {"id": workflow_id, **copy.deepcopy(wf)}


def recommend_workflow(question):
    q = (question or "").lower()
    for keywords, workflow_id in WORKFLOW_KEYWORDS:
        if any(k in q for k in keywords):
            return workflow_id
    return DEFAULT_WORKFLOW
