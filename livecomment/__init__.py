"""
YouTube 라이브 댓글 수집 + 대화 지속 엔진
- chat: 댓글 수집 (YouTube API 폴링 / OneComme 푸시 소켓), 정규화
- ai: 대화 지속 상태 머신, 콘텐츠 생성
- ingestion: 수집 방식 선택과 틱 스케줄링
- utils: 설정, 로깅
"""
