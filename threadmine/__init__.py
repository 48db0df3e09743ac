# ThreadMine: Slack / GitHub conversation mining
