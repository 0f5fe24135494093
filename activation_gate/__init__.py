"""Account activation gating: step policy, quiz grading and route guard."""
